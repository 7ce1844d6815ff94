"""헬스 체크 엔드포인트"""
from datetime import datetime

from fastapi import APIRouter, Request

from query_engine import __version__
from query_engine.core.logging import logger
from query_engine.schemas.query_schema import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    헬스 체크 엔드포인트

    - 서버 상태
    - 엔진 상태 (동시 실행 포화 여부 포함)
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return HealthResponse(status="error", timestamp=datetime.now(), version=__version__)

    try:
        summary = engine.get_health()
    except Exception as e:
        logger.error(f"Engine health check failed: {e}")
        return HealthResponse(status="error", timestamp=datetime.now(), version=__version__)

    if not summary["healthy"]:
        status = "error"
    elif summary["requests"]["saturated"]:
        status = "degraded"
    else:
        status = "ok"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(),
        version=__version__,
        engine=summary,
    )


@router.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "service": "에이전트 쿼리 엔진",
        "version": __version__,
        "docs": "/docs",
    }
