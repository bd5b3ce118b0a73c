"""
API Routes Module
"""
from .cache import router as cache_router
from .facts import router as facts_router
from .health import router as health_router
from .migrations import router as migrations_router

__all__ = [
    "cache_router",
    "facts_router",
    "health_router",
    "migrations_router",
]
