"""
Role-checked auth dependencies.

Usage:
    @router.post("/close")
    def close_tab(ctx: dict = Depends(staff_context)):
        ...
"""

from typing import Any

from fastapi import Depends

from tab_shared.config.constants import CASH_ROLES, STAFF_ROLES
from tab_shared.security.auth import current_user_context, require_roles


def staff_context(ctx: dict[str, Any] = Depends(current_user_context)) -> dict[str, Any]:
    """Any staff role."""
    require_roles(ctx, STAFF_ROLES)
    return ctx


def cash_context(ctx: dict[str, Any] = Depends(current_user_context)) -> dict[str, Any]:
    """Roles allowed to handle money: ADMIN, MANAGER, CASHIER."""
    require_roles(ctx, CASH_ROLES)
    return ctx
