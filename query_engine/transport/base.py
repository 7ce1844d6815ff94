"""Agent transport interface

엔진은 이 프로토콜만 호출합니다. HTTP 등 실제 통신은 구현체 책임입니다.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from query_engine.engine.request import QueryRequest


@dataclass
class AgentResponse:
    """에이전트 응답

    Attributes:
        query: 이 응답이 답한 쿼리 텍스트
        data: 응답 페이로드 (엔진은 해석하지 않음)
        status_code: 전송 계층 상태 코드
        request_id: 원격 요청 ID (x-request-id 등)
        received_at: 수신 시각 (epoch 초)
    """

    query: str
    data: Any
    status_code: int = 200
    request_id: Optional[str] = None
    received_at: float = field(default_factory=time.time)


class AgentTransport(Protocol):
    """에이전트 호출 인터페이스

    실패 시 `TransportError(error_class, message)`를 던져야 재시도 분류가
    정확해집니다. 연결 오류와 타임아웃을 제외한 그 외 예외는 재시도하지 않습니다.
    """

    async def execute(self, request: "QueryRequest") -> AgentResponse:
        """요청 1회 실행

        Raises:
            TransportError: 분류된 전송 실패
        """
        ...
