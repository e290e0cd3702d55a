"""
Configuration module: Settings, logging, constants.
"""

from tab_shared.config.settings import settings, DATABASE_URL
from tab_shared.config.logging import get_logger, setup_logging
from tab_shared.config.constants import (
    Roles,
    TabStatus,
    TabType,
    PaymentMethod,
    RegisterStatus,
    PlanFeatures,
    Limits,
    STAFF_ROLES,
    CASH_ROLES,
)

__all__ = [
    # settings
    "settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Roles",
    "TabStatus",
    "TabType",
    "PaymentMethod",
    "RegisterStatus",
    "PlanFeatures",
    "Limits",
    "STAFF_ROLES",
    "CASH_ROLES",
]
