"""
API Routers package.

Each module contains a FastAPI router for a specific domain.
"""

from .customers import router as customers_router
from .offers import router as offers_router
from .invoices import router as invoices_router, scheduler_router

__all__ = [
    "customers_router",
    "offers_router",
    "invoices_router",
    "scheduler_router",
]
