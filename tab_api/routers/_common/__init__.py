"""
Common utilities shared across routers.
"""

from typing import Any

from .dependencies import cash_context, staff_context
from .pagination import Pagination, get_pagination


def get_user_id(ctx: dict[str, Any]) -> str | None:
    """Token subject of the acting staff user, used for audit fields."""
    sub = ctx.get("sub")
    return str(sub) if sub is not None else None


__all__ = [
    "get_user_id",
    "cash_context",
    "staff_context",
    "Pagination",
    "get_pagination",
]
