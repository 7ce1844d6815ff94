"""Follow-up detector interface."""

from __future__ import annotations

from typing import Protocol

from query_engine.transport.base import AgentResponse


class FollowUpDetector(Protocol):
    """응답을 보고 후속 쿼리 텍스트를 제안하는 인터페이스

    부수효과 없는 순수 함수여야 합니다. 스케줄링 정책(깊이, 스택 push,
    루트당 제한)은 엔진이 강제합니다.
    """

    def analyze(self, response: AgentResponse) -> list[str]:
        ...


class NoFollowUpDetector:
    """후속 쿼리를 제안하지 않는 detector"""

    def analyze(self, response: AgentResponse) -> list[str]:
        return []
