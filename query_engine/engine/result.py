"""Execution Result - Standardized Result Format

All paths (cache, transport, rejection, cancellation) produce an
ExecutionResult. The facade always resolves with one of these and never
raises, so callers branch on `success`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from query_engine.core.exceptions import QueryEngineException, TransportError, TransportErrorClass

from query_engine.transport.base import AgentResponse

from .request import QueryMode, QueryRequest


class QueryStatus(str, Enum):
    """실행 결과 상태"""

    SUCCEEDED = "succeeded"  # transport 실행 성공
    CACHE_HIT = "cache_hit"  # 캐시에서 반환
    FAILED = "failed"  # 터미널 실패 (재시도 소진 포함)
    CANCELLED = "cancelled"  # 호출자 취소


@dataclass
class ExecutionResult:
    """쿼리 실행 결과

    Attributes:
        request_id: 요청 ID
        query: 쿼리 텍스트
        status: 결과 상태
        response: 응답 페이로드 (결과가 단독 소유)
        error: 실패 원인
        attempts: 소비한 transport 호출 횟수
        total_wait_s: 재시도 대기에 쓴 총 시간 (초)
        served_from_cache: 캐시 반환 여부
        depth: 재귀 깊이
        mode: batch | recursive
        parent_id: 부모 요청 ID
        root_id: 루트 요청 ID
        elapsed_ms: 실행 소요 시간 (밀리초)
    """

    request_id: str
    query: str
    status: QueryStatus
    response: Any = None
    error: Optional[QueryEngineException] = None
    attempts: int = 0
    total_wait_s: float = 0.0
    served_from_cache: bool = False
    depth: int = 0
    mode: QueryMode = QueryMode.BATCH
    parent_id: Optional[str] = None
    root_id: Optional[str] = None
    elapsed_ms: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status in (QueryStatus.SUCCEEDED, QueryStatus.CACHE_HIT)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error is not None else None

    @property
    def error_class(self) -> Optional[TransportErrorClass]:
        """터미널 transport 실패 분류 (transport 실패가 아니면 None)"""
        if isinstance(self.error, TransportError):
            return self.error.error_class
        return None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @staticmethod
    def _request_fields(request: QueryRequest) -> dict[str, Any]:
        return {
            "request_id": request.request_id,
            "query": request.text,
            "depth": request.depth,
            "mode": request.mode,
            "parent_id": request.parent_id,
            "root_id": request.root_id,
        }

    @classmethod
    def succeeded(
        cls,
        request: QueryRequest,
        response: Any,
        attempts: int,
        total_wait_s: float = 0.0,
        elapsed_ms: Optional[float] = None,
    ) -> "ExecutionResult":
        return cls(
            status=QueryStatus.SUCCEEDED,
            response=response,
            attempts=attempts,
            total_wait_s=total_wait_s,
            elapsed_ms=elapsed_ms,
            **cls._request_fields(request),
        )

    @classmethod
    def from_cache(cls, request: QueryRequest, response: Any) -> "ExecutionResult":
        """캐시 히트 결과 (transport 호출 0회)"""
        return cls(
            status=QueryStatus.CACHE_HIT,
            response=response,
            served_from_cache=True,
            elapsed_ms=0.0,
            **cls._request_fields(request),
        )

    @classmethod
    def failed(
        cls,
        request: QueryRequest,
        error: QueryEngineException,
        attempts: int = 0,
        total_wait_s: float = 0.0,
        elapsed_ms: Optional[float] = None,
    ) -> "ExecutionResult":
        return cls(
            status=QueryStatus.FAILED,
            error=error,
            attempts=attempts,
            total_wait_s=total_wait_s,
            elapsed_ms=elapsed_ms,
            **cls._request_fields(request),
        )

    @classmethod
    def cancelled(
        cls,
        request: QueryRequest,
        error: QueryEngineException,
        attempts: int = 0,
    ) -> "ExecutionResult":
        return cls(
            status=QueryStatus.CANCELLED,
            error=error,
            attempts=attempts,
            **cls._request_fields(request),
        )

    def to_dict(self) -> dict[str, Any]:
        """API/렌더링 계층용 직렬화"""
        return {
            "request_id": self.request_id,
            "query": self.query,
            "status": self.status.value,
            "success": self.success,
            "response": self.response.data if isinstance(self.response, AgentResponse) else self.response,
            "error_code": self.error_code,
            "error_class": self.error_class.value if self.error_class else None,
            "error_message": self.error_message,
            "attempts": self.attempts,
            "total_wait_s": self.total_wait_s,
            "served_from_cache": self.served_from_cache,
            "depth": self.depth,
            "mode": self.mode.value,
            "parent_id": self.parent_id,
            "root_id": self.root_id,
            "elapsed_ms": self.elapsed_ms,
        }
