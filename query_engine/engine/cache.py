"""Query Cache - in-process TTL + LRU store

Entries expire `ttl` seconds after they are written and the least recently
read entry is evicted first when the cache is full. Every method runs without
awaiting, so under cooperative scheduling a single get/put/invalidate is
atomic from the caller's point of view.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from query_engine.core.logging import logger


class _CacheMiss:
    """캐시 미스 신호 (오류가 아님)"""

    _instance: Optional["_CacheMiss"] = None

    def __new__(cls) -> "_CacheMiss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CACHE_MISS"


CACHE_MISS = _CacheMiss()


@dataclass
class CacheEntry:
    """캐시 엔트리

    Attributes:
        key: fingerprint
        value: 저장된 응답
        created_at: 생성 시각
        expires_at: 만료 시각 (created_at + ttl)
        last_access: 마지막 조회 시각
    """

    key: str
    value: Any
    created_at: float
    expires_at: float
    last_access: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class QueryCache:
    """TTL/LRU 캐시

    OrderedDict 순서를 LRU 순서로 사용합니다 (앞쪽이 가장 오래 전에 조회됨).

    Usage:
        cache = QueryCache(capacity=100, default_ttl=300)
        cache.put(key, response)

        value = cache.get(key)
        if value is CACHE_MISS:
            ...
    """

    def __init__(
        self,
        capacity: int = 100,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            capacity: 최대 엔트리 수
            default_ttl: 기본 TTL (초)
            clock: 시간 함수 (테스트에서 주입)

        Raises:
            ValueError: capacity 또는 default_ttl이 양수가 아닌 경우
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self.capacity = capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def get(self, key: str) -> Any:
        """캐시 조회

        Returns:
            저장된 값, 없거나 만료됐으면 CACHE_MISS
        """
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return CACHE_MISS

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self.expirations += 1
            self.misses += 1
            logger.debug(f"[CACHE] expired: key={key}")
            return CACHE_MISS

        entry.last_access = now
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """캐시 저장 (덮어쓰기 허용)

        용량이 찼으면 마지막 조회가 가장 오래된 엔트리를 먼저 제거합니다.

        Raises:
            ValueError: ttl이 양수가 아닌 경우
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        now = self._clock()
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.capacity:
            self._evict_one(now)

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            last_access=now,
        )

    def _evict_one(self, now: float) -> None:
        # 만료 엔트리가 있으면 그것부터 정리
        if self.purge_expired(now) > 0:
            return
        evicted_key, _ = self._entries.popitem(last=False)
        self.evictions += 1
        logger.debug(f"[CACHE] LRU evicted: key={evicted_key}")

    def invalidate(self, key: str) -> bool:
        """단일 엔트리 제거

        Returns:
            bool: 제거된 엔트리가 있었는지 여부
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """전체 제거 (카운터는 유지)"""
        self._entries.clear()

    def purge_expired(self, now: Optional[float] = None) -> int:
        """만료 엔트리 일괄 제거

        Returns:
            int: 제거된 개수
        """
        now = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.expirations += len(expired)
        return len(expired)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        """캐시 히트율 (0.0~1.0)"""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "default_ttl": self.default_ttl,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": self.hit_rate,
        }

    def __repr__(self) -> str:
        return (
            f"QueryCache(size={len(self._entries)}/{self.capacity}, "
            f"hits={self.hits}, misses={self.misses}, hit_rate={self.hit_rate:.1%})"
        )
