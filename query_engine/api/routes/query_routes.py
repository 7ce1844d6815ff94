"""Query Routes - HTTP Layer → QueryEngine

HTTP Layer는 요청을 QueryEngine에 위임하고 결과를 응답 스키마로
변환하는 Translator 역할만 수행합니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from query_engine.core.exceptions import QueryEngineException, QueueFullException
from query_engine.core.logging import logger
from query_engine.engine import ExecutionResult, QueryEngine
from query_engine.schemas.query_schema import (
    BatchQueryRequest,
    BatchQueryResponse,
    CacheInvalidateResponse,
    CancelResponse,
    ExecutionResultResponse,
    QuerySubmitRequest,
    StatsResponse,
)

router = APIRouter(prefix="/api/v1", tags=["query"])


def get_engine(request: Request) -> QueryEngine:
    """app.state에 등록된 QueryEngine"""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Query engine is not initialized")
    return engine


def _to_response(result: ExecutionResult) -> ExecutionResultResponse:
    return ExecutionResultResponse(**result.to_dict())


@router.post("/query", response_model=ExecutionResultResponse)
async def submit_query(
    payload: QuerySubmitRequest,
    engine: QueryEngine = Depends(get_engine),
):
    """쿼리 제출 API

    Flow:
        1. Engine에 위임 (Cache → Scheduler → Transport)
        2. 결과를 HTTP Response로 변환

    실패도 200으로 반환하고 status/error_code로 구분합니다.
    """
    logger.info(f"[API] Query request (length: {len(payload.query)})")
    result = await engine.submit(payload.query, payload.context, request_id=payload.request_id)
    return _to_response(result)


@router.post("/query/batch", response_model=BatchQueryResponse)
async def submit_batch(
    payload: BatchQueryRequest,
    engine: QueryEngine = Depends(get_engine),
):
    """batch 실행 API

    모든 쿼리를 큐에 넣은 뒤 drain하고, 후속 쿼리를 포함한 결과를
    완료 순서대로 반환합니다. 큐에 넣지 못한 항목은 실패로 포함됩니다.
    """
    rejected: list[ExecutionResultResponse] = []
    roots: set[str] = set()
    for item in payload.queries:
        try:
            request = engine.enqueue(item.query, item.context, request_id=item.request_id)
            roots.add(request.root_id)
        except QueryEngineException as e:
            if isinstance(e, QueueFullException):
                logger.warning(f"[API] Batch item rejected: {e.error_code}")
            rejected.append(
                ExecutionResultResponse(
                    request_id=item.request_id or "",
                    query=item.query,
                    status="failed",
                    success=False,
                    error_code=e.error_code,
                    error_message=e.message,
                )
            )

    # 동시에 drain된 다른 호출자의 결과는 제외
    drained = [r for r in await engine.drain() if r.root_id in roots]
    results = [_to_response(r) for r in drained] + rejected
    succeeded = sum(1 for r in results if r.success)
    logger.info(f"[API] Batch done: total={len(results)}, succeeded={succeeded}")
    return BatchQueryResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


@router.delete("/query/{request_id}", response_model=CancelResponse)
async def cancel_query(request_id: str, engine: QueryEngine = Depends(get_engine)):
    """대기/실행 중인 요청 취소"""
    cancelled = engine.cancel(request_id)
    if not cancelled:
        raise HTTPException(status_code=404, detail=f"Request not found: {request_id}")
    return CancelResponse(request_id=request_id, cancelled=True)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: QueryEngine = Depends(get_engine)):
    """엔진 통계 조회"""
    return StatsResponse(**engine.get_stats().to_dict())


@router.delete("/cache", response_model=CacheInvalidateResponse)
async def invalidate_cache(
    fingerprint: Optional[str] = Query(None, max_length=128, description="대상 fingerprint (없으면 전체)"),
    engine: QueryEngine = Depends(get_engine),
):
    """캐시 무효화"""
    removed = engine.invalidate_cache(fingerprint)
    logger.info(f"[API] Cache invalidated: removed={removed}")
    return CacheInvalidateResponse(removed=removed)
