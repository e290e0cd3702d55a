"""HTTP routers for the tab API."""

from .cash import router as cash_router
from .customers import router as customers_router
from .tabs import router as tabs_router

__all__ = ["cash_router", "customers_router", "tabs_router"]
