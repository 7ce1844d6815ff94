"""API routes package."""

from .health_routes import router as health_router
from .query_routes import router as query_router, get_engine

__all__ = ["health_router", "query_router", "get_engine"]
