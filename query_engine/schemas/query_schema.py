"""Pydantic 스키마 정의 (Query API)"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class QuerySubmitRequest(BaseModel):
    """쿼리 제출 요청"""
    query: str = Field(..., min_length=1, max_length=4000, description="에이전트에 보낼 쿼리")
    context: Optional[Dict[str, Any]] = Field(None, description="구분용 컨텍스트 (conversation_id 등)")
    request_id: Optional[str] = Field(None, max_length=64, description="취소용 요청 ID")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        """쿼리 검증: 공백만 있는 쿼리 거부"""
        if not v.strip():
            raise ValueError("쿼리는 공백만으로 구성될 수 없습니다")
        if "\0" in v:
            raise ValueError("쿼리에 허용되지 않는 문자가 포함되어 있습니다")
        return v.strip()

    @field_validator("context")
    @classmethod
    def validate_context(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is not None and len(v) > 20:
            raise ValueError("컨텍스트 항목은 20개를 넘을 수 없습니다")
        return v


class BatchQueryRequest(BaseModel):
    """batch 쿼리 요청 (enqueue 후 drain)"""
    queries: List[QuerySubmitRequest] = Field(..., min_length=1, max_length=100, description="쿼리 목록")


class ExecutionResultResponse(BaseModel):
    """쿼리 실행 결과"""
    request_id: str = Field(..., description="요청 ID")
    query: str = Field(..., description="쿼리 텍스트")
    status: str = Field(..., description="succeeded | cache_hit | failed | cancelled")
    success: bool = Field(..., description="성공 여부")
    response: Optional[Any] = Field(None, description="에이전트 응답 페이로드")
    error_code: Optional[str] = Field(None, description="에러 코드 (실패 시)")
    error_class: Optional[str] = Field(None, description="transport 실패 분류")
    error_message: Optional[str] = Field(None, description="에러 메시지")
    attempts: int = Field(0, ge=0, description="transport 호출 횟수")
    total_wait_s: float = Field(0.0, ge=0, description="재시도 대기 총 시간 (초)")
    served_from_cache: bool = Field(False, description="캐시 반환 여부")
    depth: int = Field(0, ge=0, description="재귀 깊이")
    mode: str = Field("batch", description="batch | recursive")
    parent_id: Optional[str] = Field(None, description="부모 요청 ID")
    root_id: Optional[str] = Field(None, description="루트 요청 ID")
    elapsed_ms: Optional[float] = Field(None, ge=0, description="실행 소요 시간 (밀리초)")


class BatchQueryResponse(BaseModel):
    """batch 실행 응답 (완료 순서)"""
    total: int = Field(..., ge=0, description="완료된 결과 수 (후속 쿼리 포함)")
    succeeded: int = Field(..., ge=0, description="성공 수")
    failed: int = Field(..., ge=0, description="실패/취소 수")
    results: List[ExecutionResultResponse] = Field(default_factory=list)


class CancelResponse(BaseModel):
    """취소 응답"""
    request_id: str
    cancelled: bool


class StatsResponse(BaseModel):
    """엔진 통계"""
    submitted: int = 0
    executed: int = 0
    succeeded: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    retries: int = 0
    failures: int = 0
    recursive_expansions: int = 0
    depth_exceeded: int = 0
    expansion_limited: int = 0
    cancelled: int = 0
    cache_hit_rate: float = Field(0.0, ge=0, le=1)
    started_at: float = 0.0


class CacheInvalidateResponse(BaseModel):
    """캐시 무효화 응답"""
    removed: int = Field(..., ge=0, description="제거된 엔트리 수")


class HealthResponse(BaseModel):
    """헬스 체크 응답"""
    status: str = Field(..., description="ok | degraded | error")
    timestamp: datetime
    version: str
    engine: Optional[Dict[str, Any]] = Field(None, description="엔진 상태 요약")
