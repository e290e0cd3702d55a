"""
Authentication context for staff requests.

Tokens are issued by the external auth service; this module only verifies
them (HS256 JWT) and exposes the claims the tab engine needs: subject,
tenant, branches and roles.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header, HTTPException, Request, status

from tab_shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE
from tab_shared.config.logging import auth_logger as logger
from tab_shared.utils.exceptions import InsufficientRoleError, ForbiddenError


# =============================================================================
# JWT Functions
# =============================================================================


def sign_jwt(payload: dict[str, Any], ttl_seconds: int = 15 * 60) -> str:
    """
    Sign a JWT token with the given payload.

    Used by tooling and tests; production tokens come from the auth service.

    Args:
        payload: Claims (sub, tenant_id, branch_ids, roles, ...).
        ttl_seconds: Token lifetime in seconds.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Returns the claims with ``tenant_id`` parsed to ``uuid.UUID`` and
    ``branch_ids`` to a list of ``uuid.UUID``.

    Raises:
        HTTPException: 401 if the token is invalid, expired or malformed.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the real reason, return a generic message
        logger.warning("JWT validation failed", error=str(e))
        raise _unauthorized("Invalid token")

    if not payload.get("sub"):
        raise _unauthorized("Invalid token: missing subject claim")

    if "tenant_id" not in payload:
        raise _unauthorized("Invalid token: missing tenant_id claim")

    if payload.get("type") not in ("access", None):
        raise _unauthorized("Invalid token: invalid type claim")

    try:
        payload["tenant_id"] = uuid.UUID(str(payload["tenant_id"]))
        payload["branch_ids"] = [uuid.UUID(str(b)) for b in payload.get("branch_ids", [])]
    except (ValueError, TypeError):
        raise _unauthorized("Invalid token: malformed tenant or branch claim")

    payload.setdefault("roles", [])
    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed.
    """
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def current_user_context(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the current user context from JWT.

    Usage:
        @router.get("/tabs")
        def list_tabs(ctx = Depends(current_user_context)):
            tenant_id = ctx["tenant_id"]
            ...

    Returns:
        Dict with: sub, tenant_id (UUID), branch_ids (list[UUID]), roles
    """
    token = get_bearer_token(authorization)
    ctx = verify_jwt(token)
    # Read by the rate limiter key function
    request.state.tenant_id = str(ctx["tenant_id"])
    return ctx


def require_roles(ctx: dict[str, Any], allowed: list[str] | frozenset[str]) -> None:
    """
    Verify that the user has at least one of the allowed roles.

    Raises:
        InsufficientRoleError: If user lacks required role.
    """
    user_roles = set(ctx.get("roles", []))
    if not user_roles.intersection(set(allowed)):
        raise InsufficientRoleError(sorted(allowed), user_id=ctx.get("sub"))


def require_branch(ctx: dict[str, Any], branch_id: uuid.UUID | None) -> None:
    """
    Verify that the user has access to the specified branch.

    Tokens without branch claims are tenant-wide. A None branch is always
    allowed (tenant-level register or tab).

    Raises:
        ForbiddenError: If user lacks access to the branch.
    """
    if branch_id is None:
        return
    user_branches = set(ctx.get("branch_ids", []))
    if user_branches and branch_id not in user_branches:
        raise ForbiddenError(f"access branch {branch_id}", user_id=ctx.get("sub"))
