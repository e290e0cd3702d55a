"""
Centralized constants for the tab settlement engine.

Usage:
    from tab_shared.config.constants import TabStatus, TabType, PaymentMethod

    if tab.status != TabStatus.OPEN:
        ...
"""

from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """Staff role constants (carried in the bearer token)."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    CASHIER: Final[str] = "CASHIER"
    ATTENDANT: Final[str] = "ATTENDANT"

    ALL: Final[list[str]] = [ADMIN, MANAGER, CASHIER, ATTENDANT]


CASH_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.CASHIER})
STAFF_ROLES: Final[frozenset[str]] = frozenset(Roles.ALL)


# =============================================================================
# Entity Status Constants
# =============================================================================


class TabStatus:
    """Tab status constants. CLOSED is terminal."""

    OPEN: Final[str] = "open"
    CLOSED: Final[str] = "closed"

    ALL: Final[list[str]] = [OPEN, CLOSED]


class TabType:
    """Tab settlement policy, fixed at open time from the identifier."""

    PREPAID: Final[str] = "prepaid"
    CREDIT: Final[str] = "credit"

    ALL: Final[list[str]] = [PREPAID, CREDIT]
    DEFAULT: Final[str] = PREPAID


class PaymentMethod:
    """Register payment methods. Order is the order of the totals payload."""

    CASH: Final[str] = "cash"
    DEBIT: Final[str] = "debit"
    CREDIT: Final[str] = "credit"
    PIX: Final[str] = "pix"

    ALL: Final[list[str]] = [CASH, DEBIT, CREDIT, PIX]


class RegisterStatus:
    """Cash register session status constants."""

    OPEN: Final[str] = "open"
    CLOSED: Final[str] = "closed"


class BookingStatus:
    """Location booking status constants (bookings are owned elsewhere)."""

    PENDING: Final[str] = "pending"
    IN_PROGRESS: Final[str] = "in_progress"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    # Bookings that still hold the location
    BLOCKING: Final[list[str]] = [PENDING, IN_PROGRESS]


class TransactionType:
    """Financial ledger entry types."""

    DEBIT: Final[str] = "debit"
    CREDIT: Final[str] = "credit"


# =============================================================================
# Plans and features
# =============================================================================


class PlanFeatures:
    """Feature flags per tenant plan."""

    ACCOUNT_SPLITTING: Final[str] = "account_splitting"

    BY_PLAN: Final[dict[str, frozenset[str]]] = {
        "Free": frozenset(),
        "Start": frozenset(),
        "Prime": frozenset({ACCOUNT_SPLITTING}),
    }
    DEFAULT_PLAN: Final[str] = "Free"


# =============================================================================
# Validation limits
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 9999

    MIN_IDENTIFIER_LENGTH: Final[int] = 3
    MAX_IDENTIFIER_LENGTH: Final[int] = 128

    MAX_DESCRIPTION_LENGTH: Final[int] = 500
    MAX_NOTES_LENGTH: Final[int] = 2000
    MAX_PARTICIPANTS: Final[int] = 50

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200
