"""API 엔드포인트 패키지 - export only."""

from .routes import health_router, query_router, get_engine

__all__ = ["health_router", "query_router", "get_engine"]
