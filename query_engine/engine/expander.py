"""Follow-up Expander - schedules derived queries onto the stack

The detector decides *what* to ask next; the expander owns the policy:
children get `parent = originating request`, `depth = parent.depth + 1`,
and go onto the stack (never the queue). Proposals beyond the per-root limit
are dropped; proposals beyond the depth limit are rejected by the scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from query_engine.core.exceptions import (
    DepthExceededException,
    ExpansionLimitExceededException,
    QueryEngineException,
    QueueFullException,
)
from query_engine.core.logging import logger, sanitize_for_log
from query_engine.followup.base import FollowUpDetector
from query_engine.utils.hash_utils import generate_fingerprint

from .request import QueryRequest, RequestState
from .result import ExecutionResult
from .scheduler import QueryScheduler
from .statistics import QueryStatistics


@dataclass
class ExpansionOutcome:
    """확장 결과

    Attributes:
        scheduled: 스택에 push된 자식 요청 (push 순서)
        rejected: 거절된 자식 요청과 사유
    """

    scheduled: list[QueryRequest] = field(default_factory=list)
    rejected: list[tuple[QueryRequest, QueryEngineException]] = field(default_factory=list)

    @property
    def proposed_count(self) -> int:
        return len(self.scheduled) + len(self.rejected)


class FollowUpExpander:
    """성공한 결과를 분석해 후속 요청을 스택에 올림"""

    def __init__(
        self,
        scheduler: QueryScheduler,
        detector: FollowUpDetector,
        max_derived_per_root: Optional[int] = None,
        statistics: Optional[QueryStatistics] = None,
        fingerprint: Callable[..., str] = generate_fingerprint,
    ):
        """
        Args:
            scheduler: 자식 요청을 받을 스케줄러
            detector: 후속 쿼리 제안자 (외부 제공)
            max_derived_per_root: 루트당 파생 요청 최대 개수 (None이면 무제한)
            statistics: 확장/거절 카운터
            fingerprint: fingerprint 함수 (text, context) -> key
        """
        if max_derived_per_root is not None and max_derived_per_root < 0:
            raise ValueError("max_derived_per_root must be >= 0")

        self.scheduler = scheduler
        self.detector = detector
        self.max_derived_per_root = max_derived_per_root
        self.statistics = statistics or QueryStatistics()
        self._fingerprint = fingerprint
        self._derived_per_root: dict[str, int] = {}

    def expand(self, parent: QueryRequest, result: ExecutionResult) -> ExpansionOutcome:
        """후속 요청 생성 및 스택 push

        실패했거나 캐시에서 반환된 결과는 확장하지 않습니다
        (캐시된 응답의 후속 쿼리는 최초 실행 때 이미 처리됨).

        Args:
            parent: 완료된 요청
            result: parent의 실행 결과

        Returns:
            ExpansionOutcome: push/거절된 자식 요청
        """
        outcome = ExpansionOutcome()
        if not result.success or result.served_from_cache:
            return outcome

        proposals = self._propose(parent, result)
        for text in proposals:
            child = parent.derive(text, self._fingerprint(text, parent.context))

            if self._limit_reached(parent.root_id):
                self.statistics.record_expansion_limited()
                error = ExpansionLimitExceededException(parent.root_id, self.max_derived_per_root)
                self._reject(outcome, child, error)
                continue

            try:
                self.scheduler.push_recursive(child)
            except DepthExceededException as e:
                self.statistics.record_depth_exceeded()
                self._reject(outcome, child, e)
                continue
            except QueueFullException as e:
                self._reject(outcome, child, e)
                continue

            self._derived_per_root[parent.root_id] = self._derived_per_root.get(parent.root_id, 0) + 1
            self.statistics.record_expansion()
            outcome.scheduled.append(child)

        if outcome.scheduled:
            logger.info(
                f"[EXPANDER] {len(outcome.scheduled)} follow-up(s) scheduled from "
                f"{parent.request_id} at depth {parent.depth + 1}"
            )
        return outcome

    def _propose(self, parent: QueryRequest, result: ExecutionResult) -> list[str]:
        try:
            proposals = self.detector.analyze(result.response) or []
        except Exception as e:
            # detector 오류는 확장 없음으로 취급 (부모 결과는 이미 성공)
            logger.error(
                f"[EXPANDER] detector failed for {parent.request_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return []

        seen: set[str] = set()
        cleaned: list[str] = []
        for text in proposals:
            if not isinstance(text, str) or not text.strip():
                continue
            text = text.strip()
            if text in seen:
                continue
            seen.add(text)
            cleaned.append(text)
        return cleaned

    def _limit_reached(self, root_id: str) -> bool:
        if self.max_derived_per_root is None:
            return False
        return self._derived_per_root.get(root_id, 0) >= self.max_derived_per_root

    @staticmethod
    def _reject(outcome: ExpansionOutcome, child: QueryRequest, error: QueryEngineException) -> None:
        child.transition(RequestState.FAILED)
        outcome.rejected.append((child, error))
        logger.warning(
            f"[EXPANDER] follow-up rejected ({error.error_code}): "
            f"query='{sanitize_for_log(child.text)}', parent={child.parent_id}"
        )

    def derived_count(self, root_id: str) -> int:
        return self._derived_per_root.get(root_id, 0)

    def forget_root(self, root_id: str) -> None:
        """루트 트리가 끝나면 카운터 해제"""
        self._derived_per_root.pop(root_id, None)
