"""
Security: bearer-token auth context and rate limiting.
"""

from tab_shared.security.auth import (
    current_user_context,
    require_roles,
    require_branch,
    sign_jwt,
    verify_jwt,
)
from tab_shared.security.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "current_user_context",
    "require_roles",
    "require_branch",
    "sign_jwt",
    "verify_jwt",
    "limiter",
    "rate_limit_exceeded_handler",
]
