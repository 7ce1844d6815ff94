"""FastAPI 앱 팩토리"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from query_engine.api import health_router, query_router
from query_engine.core.config import settings
from query_engine.core.logging import logger
from query_engine.engine import EngineConfig, QueryEngine
from query_engine.followup import HeuristicFollowUpDetector
from query_engine.transport import HttpAgentTransport


def build_default_engine() -> QueryEngine:
    """설정 기반 QueryEngine 생성 (HTTP transport + 휴리스틱 감지기)"""
    return QueryEngine(
        transport=HttpAgentTransport(settings),
        detector=HeuristicFollowUpDetector(),
        config=EngineConfig.from_settings(settings),
    )


def create_app(engine: Optional[QueryEngine] = None) -> FastAPI:
    """
    FastAPI 앱 생성 (Factory Pattern)

    Args:
        engine: 사용할 엔진 (기본값: 설정 기반 엔진)

    Returns:
        FastAPI 앱 인스턴스
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """애플리케이션 생명주기"""
        logger.info("Starting application...")
        if getattr(app.state, "engine", None) is None:
            app.state.engine = build_default_engine()
        logger.info(f"Application started: {app.state.engine!r}")
        yield
        logger.info("Shutting down application...")
        await app.state.engine.close()

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 라우터 등록
    app.include_router(health_router)
    app.include_router(query_router)

    return app
