"""Retry Executor - bounded exponential backoff around the transport

Every outbound call goes through `RetryExecutor.execute`. Retryable failure
classes (timeout, rate limiting, server unavailability) are absorbed until
`max_attempts` is reached; anything else fails on first occurrence. The
executor always returns an ExecutionResult and never raises past its own
boundary (task cancellation excepted).
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from query_engine.core.exceptions import (
    DEFAULT_RETRYABLE_CLASSES,
    QueryEngineException,
    TransportError,
    TransportErrorClass,
    UnexpectedTransportException,
)
from query_engine.core.logging import logger, sanitize_for_log
from query_engine.transport.base import AgentTransport

from .request import QueryRequest
from .result import ExecutionResult
from .statistics import QueryStatistics


@dataclass(frozen=True)
class RetryPolicy:
    """재시도 정책 (엔진 인스턴스당 불변)

    delay(n) = min(base_delay_s * multiplier^(n-1), max_delay_s) + jitter
    jitter ~ U(jitter_min_s, jitter_max_s)
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    multiplier: float = 2.0
    max_delay_s: float = 10.0
    jitter_min_s: float = 0.0
    jitter_max_s: float = 0.25
    retryable: frozenset[TransportErrorClass] = DEFAULT_RETRYABLE_CLASSES

    def __post_init__(self):
        """설정 검증"""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("base_delay_s must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_s < self.base_delay_s:
            raise ValueError(
                f"max_delay_s ({self.max_delay_s}) must be >= base_delay_s ({self.base_delay_s})"
            )
        if not 0 <= self.jitter_min_s <= self.jitter_max_s:
            raise ValueError("jitter range must satisfy 0 <= jitter_min_s <= jitter_max_s")
        object.__setattr__(self, "retryable", frozenset(TransportErrorClass(c) for c in self.retryable))

    def is_retryable(self, error_class: TransportErrorClass) -> bool:
        return error_class in self.retryable

    def backoff_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """attempt번째 실패 후 대기 시간 (초)

        Args:
            attempt: 방금 실패한 시도 번호 (1부터)
            rng: 지터용 난수 생성기
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        exponential = min(self.base_delay_s * (self.multiplier ** (attempt - 1)), self.max_delay_s)
        if self.jitter_max_s <= 0:
            return exponential
        rng = rng or random
        return exponential + rng.uniform(self.jitter_min_s, self.jitter_max_s)


class RetryExecutor:
    """transport 호출 + 재시도 실행자

    Usage:
        executor = RetryExecutor(transport, RetryPolicy(max_attempts=3))
        result = await executor.execute(request)
        if not result.success:
            print(result.error_code, result.attempts)
    """

    def __init__(
        self,
        transport: AgentTransport,
        policy: Optional[RetryPolicy] = None,
        statistics: Optional[QueryStatistics] = None,
        attempt_timeout_s: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            transport: 에이전트 transport
            policy: 재시도 정책 (기본값: RetryPolicy())
            statistics: 재시도 횟수를 기록할 통계 객체
            attempt_timeout_s: 시도당 데드라인 (초) - 초과 시 timeout으로 분류
            sleep: 백오프 대기 함수 (테스트에서 주입)
            rng: 지터 난수 생성기
        """
        if transport is None:
            raise ValueError("transport must not be None")
        if attempt_timeout_s <= 0:
            raise ValueError("attempt_timeout_s must be positive")

        self.transport = transport
        self.policy = policy or RetryPolicy()
        self.statistics = statistics or QueryStatistics()
        self.attempt_timeout_s = attempt_timeout_s
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def execute(self, request: QueryRequest) -> ExecutionResult:
        """요청 실행 (재시도 포함)

        Returns:
            ExecutionResult: 성공 또는 터미널 실패 (attempts, total_wait_s 기록)
        """
        started = time.monotonic()
        attempts = 0
        total_wait = 0.0
        previous_delay = 0.0

        while True:
            attempts += 1
            try:
                response = await asyncio.wait_for(
                    self.transport.execute(request),
                    timeout=self.attempt_timeout_s,
                )
                if response is None:
                    raise UnexpectedTransportException("transport returned no response")
                return ExecutionResult.succeeded(
                    request,
                    response,
                    attempts=attempts,
                    total_wait_s=total_wait,
                    elapsed_ms=(time.monotonic() - started) * 1000,
                )
            except Exception as e:
                error = self.classify(e)

            retryable = isinstance(error, TransportError) and self.policy.is_retryable(error.error_class)
            if not retryable or attempts >= self.policy.max_attempts:
                log = logger.error if retryable else logger.warning
                log(
                    f"[RETRY] giving up: request={request.request_id}, "
                    f"query='{sanitize_for_log(request.text)}', attempts={attempts}, error={error}"
                )
                return ExecutionResult.failed(
                    request,
                    error,
                    attempts=attempts,
                    total_wait_s=total_wait,
                    elapsed_ms=(time.monotonic() - started) * 1000,
                )

            # 지터가 있어도 대기 시간은 줄어들지 않음
            delay = max(self.policy.backoff_delay(attempts, self._rng), previous_delay)
            previous_delay = delay
            total_wait += delay
            self.statistics.record_retry()
            logger.warning(
                f"[RETRY] attempt {attempts}/{self.policy.max_attempts} failed "
                f"({error.error_class.value}), retrying in {delay:.2f}s: request={request.request_id}"
            )
            await self._sleep(delay)

    def classify(self, error: Exception) -> QueryEngineException:
        """transport 예외를 실패 분류로 변환

        - TransportError: 그대로
        - asyncio/builtin TimeoutError (시도 데드라인): timeout
        - ConnectionError/OSError: server_unavailable
        - 그 외: UnexpectedTransportException (재시도 안 함)
        """
        if isinstance(error, TransportError):
            return error
        if isinstance(error, UnexpectedTransportException):
            return error
        # TimeoutError는 OSError 하위 클래스이므로 먼저 검사
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return TransportError(
                TransportErrorClass.TIMEOUT,
                f"Attempt exceeded deadline of {self.attempt_timeout_s}s",
            )
        if isinstance(error, (ConnectionError, OSError)):
            return TransportError(
                TransportErrorClass.SERVER_UNAVAILABLE,
                f"Network error: {type(error).__name__}: {error}",
            )
        return UnexpectedTransportException(f"{type(error).__name__}: {error}")
