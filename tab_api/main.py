"""
Tab API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tab_shared.config.settings import settings
from tab_shared.infrastructure.db import get_db
from tab_shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from tab_api.core import configure_cors, lifespan, register_middlewares
from tab_api.routers import cash_router, customers_router, tabs_router


app = FastAPI(
    title="Tab Settlement API",
    description="Tabs, participant splits, settlement and cash registers for venues",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_middlewares(app)
configure_cors(app)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "tab-api",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check that verifies database connectivity.
    Returns 503 when the database is unreachable.
    """
    checks = {
        "service": "tab-api",
        "environment": settings.environment,
        "dependencies": {},
    }

    try:
        db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
        all_healthy = True
    except SQLAlchemyError as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    checks["status"] = "healthy" if all_healthy else "degraded"
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(tabs_router)
app.include_router(cash_router)
app.include_router(customers_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tab_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.debug,
    )
