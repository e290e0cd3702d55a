"""
Rate limiting for tab and cash endpoints using slowapi.

Counters live in the store named by RATE_LIMIT_STORAGE_URI. The default
``memory://`` is per process; multi-instance deployments must point it at
a shared store (``redis://host:port``) so every instance sees the same
counters.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from tab_shared.config.settings import settings
from tab_shared.config.logging import get_logger

logger = get_logger(__name__)


def tenant_or_ip_key(request: Request) -> str:
    """
    Rate-limit key: the tenant when the request is authenticated, else the IP.

    Tenant ids come from request.state, set by the auth dependency; the
    raw header is never trusted here.
    """
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=tenant_or_ip_key,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render rate limit errors with the same shape as other API errors."""
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        key=tenant_or_ip_key(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"detail": f"Too many requests: {exc.detail}"},
    )
