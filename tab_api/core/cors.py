"""
CORS for the POS and back-office frontends.

Origins come from ALLOWED_ORIGINS (comma-separated). Without it only local
frontends are accepted, and only outside production.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tab_shared.config.settings import settings
from tab_shared.infrastructure.correlation import REQUEST_ID_HEADER


LOCAL_FRONTEND_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

# The API only reads and posts
ALLOWED_METHODS = ["GET", "POST", "OPTIONS"]

ALLOWED_HEADERS = ["Authorization", "Content-Type", "Accept", REQUEST_ID_HEADER]


def get_cors_origins() -> list[str]:
    """Configured origins, or the local frontends outside production."""
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if origins:
        return origins
    if settings.environment == "production":
        return []
    return LOCAL_FRONTEND_ORIGINS


def configure_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=[REQUEST_ID_HEADER],
        # Short preflight cache while developing
        max_age=0 if settings.environment == "development" else 600,
    )
