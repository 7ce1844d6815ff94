"""Heuristic follow-up detector

Reads common agent response markers (pagination, incomplete data, explicit
follow-up flags, suggestions) and proposes the next query text.
"""

from __future__ import annotations

from typing import Any, Optional

from query_engine.transport.base import AgentResponse


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def should_follow_up(payload: Any) -> bool:
    """응답이 후속 쿼리를 필요로 하는지 판단

    - requires_follow_up == True
    - data.incomplete == True
    - has_more_results == True 또는 data.has_more == True
    - next_query_suggestion 존재
    - related_topics 비어 있지 않음
    - follow_up_queries 비어 있지 않음
    """
    if not isinstance(payload, dict):
        return False
    data = _as_dict(payload.get("data"))

    if payload.get("requires_follow_up") is True:
        return True
    if data.get("incomplete") is True:
        return True
    if payload.get("has_more_results") is True or data.get("has_more") is True:
        return True
    if payload.get("next_query_suggestion"):
        return True
    if isinstance(payload.get("related_topics"), list) and payload["related_topics"]:
        return True
    if isinstance(payload.get("follow_up_queries"), list) and payload["follow_up_queries"]:
        return True
    return False


def generate_follow_up_query(original_query: str, payload: Any) -> Optional[str]:
    """후속 쿼리 텍스트 1개 생성 (우선순위: 페이지 → 상세 → 제안 → 관련 주제)"""
    if not isinstance(payload, dict):
        return None
    data = _as_dict(payload.get("data"))

    if payload.get("has_more_results") is True or data.get("has_more") is True:
        page = data.get("page")
        current = page if isinstance(page, int) and page > 0 else 1
        return f"{original_query} page {current + 1}"

    if data.get("incomplete") is True:
        return f"{original_query} - provide more details"

    suggestion = payload.get("next_query_suggestion")
    if isinstance(suggestion, str) and suggestion.strip():
        return suggestion.strip()

    topics = payload.get("related_topics")
    if isinstance(topics, list) and topics:
        return f"Tell me more about {topics[0]}"

    if payload.get("requires_follow_up") is True:
        return f"{original_query} - continue"

    return None


class HeuristicFollowUpDetector:
    """기본 후속 쿼리 detector

    `follow_up_queries` 목록이 있으면 그대로 모두 제안하고, 없으면
    휴리스틱으로 최대 1개를 제안합니다.
    """

    def analyze(self, response: AgentResponse) -> list[str]:
        payload = response.data
        if not should_follow_up(payload):
            return []

        explicit = payload.get("follow_up_queries")
        if isinstance(explicit, list) and explicit:
            return [q.strip() for q in explicit if isinstance(q, str) and q.strip()]

        follow_up = generate_follow_up_query(response.query, payload)
        return [follow_up] if follow_up else []
