"""Query Request - unit of scheduled work

A request is created by `QueryEngine.submit`/`enqueue` (batch) or by the
Follow-up Expander (recursive). `parent_id` and `root_id` are back-references
only; a request never owns another request.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from query_engine.core.exceptions import InvalidStateTransitionException


class QueryMode(str, Enum):
    """요청 출처"""

    BATCH = "batch"
    RECURSIVE = "recursive"


class RequestState(str, Enum):
    """요청 상태 머신

    Pending -> InFlight -> {Succeeded, Failed}
    Pending -> Succeeded (캐시 히트, 실행 없음)
    Pending -> Failed (검증 실패, 깊이/확장 제한 거절)
    Pending -> Cancelled (대기 중 취소)
    InFlight -> Cancelled (실행 중 취소, 결과 폐기)
    재시도는 InFlight 내부에서 처리되며 별도 상태가 아닙니다.
    """

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestState.SUCCEEDED, RequestState.FAILED, RequestState.CANCELLED)


_ALLOWED_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.PENDING: frozenset({
        RequestState.IN_FLIGHT, RequestState.SUCCEEDED, RequestState.FAILED, RequestState.CANCELLED,
    }),
    RequestState.IN_FLIGHT: frozenset({RequestState.SUCCEEDED, RequestState.FAILED, RequestState.CANCELLED}),
    RequestState.SUCCEEDED: frozenset(),
    RequestState.FAILED: frozenset(),
    RequestState.CANCELLED: frozenset(),
}


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass
class QueryRequest:
    """스케줄러가 다루는 쿼리 요청

    Attributes:
        text: 쿼리 텍스트
        fingerprint: 캐시 키
        mode: batch | recursive
        depth: 재귀 깊이 (루트 = 0, 자식 = 부모 + 1)
        context: 구분용 컨텍스트 (conversation_id 등)
        request_id: 요청 ID
        parent_id: 부모 요청 ID (recursive만)
        root_id: 루트 요청 ID (루트는 자기 자신)
        created_at: 생성 시각 (epoch 초)
        state: 현재 상태
    """

    text: str
    fingerprint: str
    mode: QueryMode = QueryMode.BATCH
    depth: int = 0
    context: dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=new_request_id)
    parent_id: Optional[str] = None
    root_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    state: RequestState = RequestState.PENDING

    def __post_init__(self) -> None:
        if self.depth < 0:
            raise ValueError(f"depth must be >= 0, got {self.depth}")
        if self.root_id is None:
            self.root_id = self.request_id

    @classmethod
    def batch(
        cls,
        text: str,
        fingerprint: str,
        context: Optional[dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> "QueryRequest":
        """호출자가 직접 제출한 루트 요청 생성"""
        return cls(
            text=text,
            fingerprint=fingerprint,
            mode=QueryMode.BATCH,
            depth=0,
            context=dict(context or {}),
            request_id=request_id or new_request_id(),
        )

    def derive(self, text: str, fingerprint: str) -> "QueryRequest":
        """후속(recursive) 요청 생성 - depth는 정확히 +1"""
        return QueryRequest(
            text=text,
            fingerprint=fingerprint,
            mode=QueryMode.RECURSIVE,
            depth=self.depth + 1,
            context=dict(self.context),
            parent_id=self.request_id,
            root_id=self.root_id,
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def transition(self, target: RequestState) -> None:
        """상태 전이 (터미널 상태에서 재진입 불가)

        Raises:
            InvalidStateTransitionException: 허용되지 않은 전이
        """
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionException(self.request_id, self.state.value, target.value)
        self.state = target
