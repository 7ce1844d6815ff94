"""Engine Config - immutable configuration for one QueryEngine instance

Built once (directly or via `EngineConfig.from_settings`) and validated at
construction. The engine never reads environment settings on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

from .retry import RetryPolicy

if TYPE_CHECKING:
    from query_engine.core.config import Settings


@dataclass(frozen=True)
class EngineConfig:
    """엔진 설정 (불변)

    Attributes:
        cache_enabled: 캐시 사용 여부
        cache_capacity: 캐시 최대 엔트리 수
        cache_ttl_s: 캐시 TTL (초)
        max_recursion_depth: 최대 재귀 깊이
        max_derived_per_root: 루트당 파생 요청 최대 개수 (None이면 무제한)
        max_queue_size: queue/stack 각각의 최대 크기 (None이면 무제한)
        follow_up_enabled: 후속 쿼리 확장 여부
        retry_max_attempts ~ retry_jitter_max_s: 재시도 정책
        concurrency_limit: 동시 실행 요청 상한
        attempt_timeout_s: 시도당 데드라인 (초)
        history_size: 결과 히스토리 보관 개수
    """

    cache_enabled: bool = True
    cache_capacity: int = 100
    cache_ttl_s: float = 300.0
    max_recursion_depth: int = 5
    max_derived_per_root: Optional[int] = 20
    max_queue_size: Optional[int] = 100
    follow_up_enabled: bool = True
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay_s: float = 10.0
    retry_jitter_min_s: float = 0.0
    retry_jitter_max_s: float = 0.25
    concurrency_limit: int = 5
    attempt_timeout_s: float = 30.0
    history_size: int = 1000

    def __post_init__(self):
        """설정 검증"""
        if self.cache_capacity <= 0:
            raise ValueError("cache_capacity must be positive")
        if self.cache_ttl_s <= 0:
            raise ValueError("cache_ttl_s must be positive")
        if self.max_recursion_depth < 0:
            raise ValueError("max_recursion_depth must be >= 0")
        if self.max_derived_per_root is not None and self.max_derived_per_root < 0:
            raise ValueError("max_derived_per_root must be >= 0")
        if self.max_queue_size is not None and self.max_queue_size <= 0:
            raise ValueError("max_queue_size must be positive")
        if self.concurrency_limit <= 0:
            raise ValueError("concurrency_limit must be positive")
        if self.attempt_timeout_s <= 0:
            raise ValueError("attempt_timeout_s must be positive")
        if self.history_size < 0:
            raise ValueError("history_size must be >= 0")
        # 재시도 범위 검증은 RetryPolicy에 위임
        _ = self.retry_policy

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay_s=self.retry_base_delay_s,
            multiplier=self.retry_multiplier,
            max_delay_s=self.retry_max_delay_s,
            jitter_min_s=self.retry_jitter_min_s,
            jitter_max_s=self.retry_jitter_max_s,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "EngineConfig":
        """환경 설정(Settings)에서 엔진 설정 생성"""
        return cls(
            cache_enabled=settings.cache_enabled,
            cache_capacity=settings.cache_capacity,
            cache_ttl_s=settings.cache_ttl_s,
            max_recursion_depth=settings.max_recursion_depth,
            max_derived_per_root=settings.max_derived_per_root,
            max_queue_size=settings.max_queue_size,
            follow_up_enabled=settings.follow_up_enabled,
            retry_max_attempts=settings.retry_max_attempts,
            retry_base_delay_s=settings.retry_base_delay_s,
            retry_multiplier=settings.retry_multiplier,
            retry_max_delay_s=settings.retry_max_delay_s,
            retry_jitter_min_s=settings.retry_jitter_min_s,
            retry_jitter_max_s=settings.retry_jitter_max_s,
            concurrency_limit=settings.concurrency_limit,
            attempt_timeout_s=settings.attempt_timeout_s,
            history_size=settings.history_size,
        )

    def summary(self) -> dict[str, Any]:
        """health/summary 응답용 요약"""
        return {
            "cache": {
                "enabled": self.cache_enabled,
                "capacity": self.cache_capacity,
                "ttl": f"{self.cache_ttl_s}s",
            },
            "query": {
                "max_depth": self.max_recursion_depth,
                "max_derived_per_root": self.max_derived_per_root,
                "follow_up_enabled": self.follow_up_enabled,
                "attempt_timeout": f"{self.attempt_timeout_s}s",
            },
            "retry": {
                "max_attempts": self.retry_max_attempts,
                "base_delay": f"{self.retry_base_delay_s}s",
                "multiplier": self.retry_multiplier,
            },
            "concurrency_limit": self.concurrency_limit,
        }
