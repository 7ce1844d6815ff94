"""Engine Layer - Query Scheduling and Resilience

This module provides the core engine layer, implementing:
- QueryEngine: Main entry point (submit / enqueue / drain / cancel / stats)
- QueryScheduler: FIFO queue for batch work, LIFO stack for follow-ups
- QueryCache: TTL + LRU cache keyed by query fingerprint
- RetryExecutor / RetryPolicy: bounded exponential backoff around the transport
- FollowUpExpander: schedules derived queries onto the stack
- QueryStatistics: engine counters
- ExecutionResult: standardized result format
"""

from .cache import CACHE_MISS, CacheEntry, QueryCache
from .config import EngineConfig
from .expander import ExpansionOutcome, FollowUpExpander
from .orchestrator import QueryEngine
from .request import QueryMode, QueryRequest, RequestState
from .result import ExecutionResult, QueryStatus
from .retry import RetryExecutor, RetryPolicy
from .scheduler import QueryScheduler
from .statistics import QueryStatistics, StatsSnapshot

__all__ = [
    "QueryEngine",
    "EngineConfig",
    "QueryScheduler",
    "QueryCache",
    "CacheEntry",
    "CACHE_MISS",
    "RetryExecutor",
    "RetryPolicy",
    "FollowUpExpander",
    "ExpansionOutcome",
    "QueryStatistics",
    "StatsSnapshot",
    "QueryRequest",
    "QueryMode",
    "RequestState",
    "ExecutionResult",
    "QueryStatus",
]
