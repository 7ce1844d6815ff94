"""Statistics tracker for the query engine."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class StatsSnapshot:
    """통계 스냅샷 (불변)"""

    submitted: int
    executed: int
    succeeded: int
    cache_hits: int
    cache_misses: int
    retries: int
    failures: int
    recursive_expansions: int
    depth_exceeded: int
    expansion_limited: int
    cancelled: int
    started_at: float

    @property
    def cache_hit_rate(self) -> float:
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cache_hit_rate"] = self.cache_hit_rate
        return data


@dataclass
class QueryStatistics:
    """엔진 카운터

    각 record_* 는 카운터 하나만 증가시키므로 협력적 스케줄링 중에도
    중간 상태가 관찰되지 않습니다.
    """

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
    started_at: float = field(default_factory=time.time)

    def record_submitted(self) -> None:
        self.submitted += 1

    def record_executed(self) -> None:
        """transport 실행 1건 (재시도 포함 1건으로 계산)"""
        self.executed += 1

    def record_success(self) -> None:
        self.succeeded += 1

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    def record_retry(self) -> None:
        self.retries += 1

    def record_failure(self) -> None:
        self.failures += 1

    def record_expansion(self) -> None:
        self.recursive_expansions += 1

    def record_depth_exceeded(self) -> None:
        self.depth_exceeded += 1

    def record_expansion_limited(self) -> None:
        self.expansion_limited += 1

    def record_cancelled(self) -> None:
        self.cancelled += 1

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            submitted=self.submitted,
            executed=self.executed,
            succeeded=self.succeeded,
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            retries=self.retries,
            failures=self.failures,
            recursive_expansions=self.recursive_expansions,
            depth_exceeded=self.depth_exceeded,
            expansion_limited=self.expansion_limited,
            cancelled=self.cancelled,
            started_at=self.started_at,
        )

    def reset(self) -> None:
        """카운터 초기화 (시작 시각 갱신)"""
        self.submitted = 0
        self.executed = 0
        self.succeeded = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.retries = 0
        self.failures = 0
        self.recursive_expansions = 0
        self.depth_exceeded = 0
        self.expansion_limited = 0
        self.cancelled = 0
        self.started_at = time.time()

    def __repr__(self) -> str:
        snap = self.snapshot()
        return (
            f"QueryStatistics(submitted={snap.submitted}, executed={snap.executed}, "
            f"cache={snap.cache_hits}H/{snap.cache_misses}M={snap.cache_hit_rate:.1%}, "
            f"retries={snap.retries}, failures={snap.failures})"
        )
