"""
Centralized HTTP exceptions for consistent error handling.

Domain services raise these directly; FastAPI renders them as
``{"detail": ...}`` with the matching status code.

Usage:
    from tab_shared.utils.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError("Tab", tab_id)
    raise InvalidStateError("Tab", tab.status, [TabStatus.OPEN])
"""

from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status

from tab_shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Customer", customer_id)
        raise NotFoundError("Identifier", tenant_id=tenant_id)
    """

    def __init__(self, entity: str, entity_id: Any = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} {entity_id} not found"
        else:
            detail = f"{entity} not found"

        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class TabNotFoundError(NotFoundError):
    """Tab not found."""

    def __init__(self, tab_id: Any = None, **log_context: Any):
        super().__init__("Tab", tab_id, **log_context)


class CustomerNotFoundError(NotFoundError):
    """Customer not found (names the missing customer)."""

    def __init__(self, customer_id: Any = None, **log_context: Any):
        super().__init__("Customer", customer_id, **log_context)


class IdentifierNotFoundError(NotFoundError):
    """No active identifier for the code. The code itself is not echoed."""

    def __init__(self, **log_context: Any):
        super().__init__("Identifier", **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("split tab items")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not allowed to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class FeatureNotAvailableError(ForbiddenError):
    """The tenant's plan does not include a feature."""

    def __init__(self, feature: str, plan: str | None = None, **log_context: Any):
        self.feature = feature
        super().__init__(
            f"use '{feature}' on the current plan ({plan or 'unknown'})",
            feature=feature,
            plan=plan,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input or business-rule validation error (400).

    Usage:
        raise ValidationError("endAt must be after startAt")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidStateError(ValidationError):
    """
    Entity is in an invalid state for the operation.

    Either pass the current and expected states, or a free-form reason.
    """

    def __init__(
        self,
        entity: str,
        current_state: str | None = None,
        expected_states: list[str] | None = None,
        reason: str | None = None,
        **log_context: Any,
    ):
        if reason:
            detail = f"{entity}: {reason}"
        elif expected_states:
            states_str = ", ".join(expected_states)
            detail = f"{entity} is '{current_state}', expected: {states_str}"
        else:
            detail = f"{entity} cannot be '{current_state}' for this operation"

        self.entity = entity
        self.current_state = current_state
        super().__init__(detail, entity=entity, current_state=current_state, **log_context)


class InsufficientFundsError(ValidationError):
    """
    Prepaid balance or credit limit does not cover a charge.

    Carries the offending customer and the amounts so callers can act
    (top up, raise the limit, move items to another participant).
    """

    def __init__(
        self,
        customer_id: Any,
        required: Decimal,
        available: Decimal,
        *,
        kind: str = "credits",
        customer_name: str | None = None,
        **log_context: Any,
    ):
        self.customer_id = customer_id
        self.required = required
        self.available = available
        self.kind = kind

        who = customer_name or f"customer {customer_id}"
        if kind == "credit_limit":
            detail = f"Credit limit exceeded for {who}: total {required}, limit {available}"
        else:
            detail = f"Insufficient credits for {who}: required {required}, available {available}"

        super().__init__(
            detail,
            customer_id=customer_id,
            required=required,
            available=available,
            kind=kind,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Cash register already open for this branch")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class LocationReservedError(ConflictError):
    """A blocking booking by another customer overlaps the requested window."""

    def __init__(self, location_id: Any, **log_context: Any):
        self.location_id = location_id
        super().__init__(
            "Location reserved for this time",
            location_id=location_id,
            **log_context,
        )



# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """Internal server error (500)."""

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Database error during {operation}. Please try again."
        super().__init__(detail, operation=operation, **log_context)
