"""Query Engine - public entry point

Coordinates the query pipeline:
1. Cache lookup (fingerprint of text + context)
2. Scheduling (shared queue + stack, stack first)
3. Execution through the Retry Executor, one request at a time
4. Follow-up expansion of successful results onto the stack
5. Result publication (waiters, drain collectors, history, statistics)

One engine owns one scheduler shared by every submission. A single pump
task drains it one request at a time, so the stack always empties before the
queue and each recursive tree runs in exact depth-first order. Up to
`concurrency_limit` submit() calls may wait on results at once; further
callers wait for admission before their request is scheduled.
"""

from __future__ import annotations

import asyncio
import copy
import random
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from query_engine.core.exceptions import (
    InvalidQueryException,
    QueryEngineException,
    QueueFullException,
    RequestCancelledException,
    UnexpectedTransportException,
    ValidationException,
)
from query_engine.core.logging import logger, sanitize_for_log
from query_engine.followup.base import FollowUpDetector
from query_engine.followup.detector import HeuristicFollowUpDetector
from query_engine.transport.base import AgentTransport
from query_engine.utils.hash_utils import generate_fingerprint

from .cache import CACHE_MISS, QueryCache
from .config import EngineConfig
from .expander import FollowUpExpander
from .request import QueryRequest, RequestState
from .result import ExecutionResult
from .retry import RetryExecutor
from .scheduler import QueryScheduler
from .statistics import QueryStatistics, StatsSnapshot

MAX_QUERY_LENGTH = 4000


class QueryEngine:
    """쿼리 엔진 퍼사드

    submit()은 항상 ExecutionResult로 끝나며 예외를 던지지 않습니다.
    호출자는 result.success로 분기합니다.

    Usage:
        engine = QueryEngine(transport, config=EngineConfig(concurrency_limit=3))

        result = await engine.submit("sales report", {"conversation_id": "c-1"})
        if result.success:
            render(result.response)

        # 배치: 먼저 채우고 한 번에 실행
        engine.enqueue("q1")
        engine.enqueue("q2")
        results = await engine.drain()
    """

    def __init__(
        self,
        transport: AgentTransport,
        detector: Optional[FollowUpDetector] = None,
        config: Optional[EngineConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            transport: 에이전트 transport (execute 메서드 구현)
            detector: 후속 쿼리 detector (기본값: HeuristicFollowUpDetector)
            config: 엔진 설정 (기본값: EngineConfig())
            sleep: 백오프 대기 함수 (테스트에서 주입)
            rng: 백오프 지터 난수 생성기
            clock: 캐시 TTL 시계
        """
        if transport is None:
            raise ValueError("transport must not be None")

        self.config = config or EngineConfig()
        self.transport = transport
        self.statistics = QueryStatistics()
        self.cache = QueryCache(
            capacity=self.config.cache_capacity,
            default_ttl=self.config.cache_ttl_s,
            clock=clock,
        )
        self.scheduler = QueryScheduler(
            max_depth=self.config.max_recursion_depth,
            max_size=self.config.max_queue_size,
        )
        self.executor = RetryExecutor(
            transport,
            policy=self.config.retry_policy,
            statistics=self.statistics,
            attempt_timeout_s=self.config.attempt_timeout_s,
            sleep=sleep,
            rng=rng,
        )
        self.expander = FollowUpExpander(
            self.scheduler,
            detector or HeuristicFollowUpDetector(),
            max_derived_per_root=self.config.max_derived_per_root,
            statistics=self.statistics,
        )

        self._admission = asyncio.Semaphore(self.config.concurrency_limit)
        self._awaiting = 0
        self._pump_task: Optional[asyncio.Task] = None
        self._waiters: dict[str, asyncio.Future] = {}
        self._cancelled: set[str] = set()
        self._outstanding: dict[str, int] = {}
        self._collectors: list[list[ExecutionResult]] = []
        self._history: deque[ExecutionResult] = deque(maxlen=self.config.history_size)
        self._closed = False

        logger.info(
            f"[ENGINE] initialized: concurrency={self.config.concurrency_limit}, "
            f"max_depth={self.config.max_recursion_depth}, cache={self.config.cache_enabled}"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fingerprint(self, text: str, context: Optional[dict[str, Any]] = None) -> str:
        return generate_fingerprint(text, context)

    async def submit(
        self,
        text: str,
        context: Optional[dict[str, Any]] = None,
        *,
        request_id: Optional[str] = None,
    ) -> ExecutionResult:
        """쿼리 제출 후 결과 대기

        캐시 히트면 즉시 반환하고, 미스면 동시 대기 슬롯(concurrency_limit)을
        얻은 뒤 batch 요청으로 큐에 넣고 해당 요청의 결과가 나올 때까지
        스케줄러를 구동합니다. 자식(후속) 요청은 기다리지 않습니다.

        Args:
            text: 쿼리 텍스트
            context: 구분용 컨텍스트 (conversation_id 등)
            request_id: 취소용으로 호출자가 지정하는 요청 ID

        Returns:
            ExecutionResult: 성공/실패 결과 (예외를 던지지 않음)
        """
        self.statistics.record_submitted()
        request = QueryRequest.batch(
            text if isinstance(text, str) else "",
            generate_fingerprint(text if isinstance(text, str) else "", context),
            context=context,
            request_id=request_id,
        )

        error = self._validate(text, request.request_id)
        if error is not None:
            logger.warning(f"[ENGINE] submit rejected: {error}")
            request.transition(RequestState.FAILED)
            return self._finish_unscheduled(ExecutionResult.failed(request, error))

        # 미스는 실행 시점 조회에서 한 번만 집계
        cached = self._cache_lookup(request, count_miss=False)
        if cached is not CACHE_MISS:
            logger.info(f"[ENGINE] cache hit: query='{sanitize_for_log(request.text)}'")
            request.transition(RequestState.SUCCEEDED)
            return self._finish_unscheduled(ExecutionResult.from_cache(request, cached))

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        # 대기 중에도 request_id 중복을 막기 위해 먼저 등록
        self._waiters[request.request_id] = future
        try:
            await self._admission.acquire()
        except asyncio.CancelledError:
            self._waiters.pop(request.request_id, None)
            raise

        self._awaiting += 1
        try:
            if self._closed:
                self._waiters.pop(request.request_id, None)
                request.transition(RequestState.FAILED)
                return self._finish_unscheduled(
                    ExecutionResult.failed(request, InvalidQueryException("engine is closed"))
                )
            try:
                self._schedule_batch(request)
            except QueueFullException as e:
                self._waiters.pop(request.request_id, None)
                request.transition(RequestState.FAILED)
                return self._finish_unscheduled(ExecutionResult.failed(request, e))

            self._ensure_pump()
            try:
                return await future
            except asyncio.CancelledError:
                # 호출자가 대기를 포기하면 요청도 취소
                self.cancel(request.request_id)
                raise
        finally:
            self._awaiting -= 1
            self._admission.release()

    def enqueue(
        self,
        text: str,
        context: Optional[dict[str, Any]] = None,
        *,
        request_id: Optional[str] = None,
    ) -> QueryRequest:
        """batch 요청을 큐에 추가만 함 (실행은 drain())

        Raises:
            InvalidQueryException: 텍스트가 유효하지 않은 경우
            ValidationException: request_id 중복
            QueueFullException: 큐가 가득 찬 경우
        """
        request = QueryRequest.batch(
            text if isinstance(text, str) else "",
            generate_fingerprint(text if isinstance(text, str) else "", context),
            context=context,
            request_id=request_id,
        )
        error = self._validate(text, request.request_id)
        if error is not None:
            raise error
        self.statistics.record_submitted()
        self._schedule_batch(request)
        return request

    async def drain(self) -> list[ExecutionResult]:
        """스케줄러가 idle이 될 때까지 실행

        Returns:
            이번 drain 동안 완료된 결과 (완료 순서)
        """
        collected: list[ExecutionResult] = []
        self._collectors.append(collected)
        try:
            task = self._ensure_pump()
            if task is not None:
                await asyncio.shield(task)
        finally:
            self._collectors.remove(collected)
        return collected

    def cancel(self, request_id: str) -> bool:
        """요청 취소

        대기 중이면 스케줄러에서 제거하고, 실행 중이면 끝까지 실행한 뒤
        결과를 폐기합니다 (캐시 저장/후속 확장 없음).

        Returns:
            bool: 취소 대상이 있었는지 여부
        """
        request = self.scheduler.cancel(request_id)
        if request is not None:
            request.transition(RequestState.CANCELLED)
            self.statistics.record_cancelled()
            logger.info(f"[ENGINE] cancelled pending request {request_id}")
            self._publish(ExecutionResult.cancelled(request, RequestCancelledException(request_id)))
            self._untrack(request)
            return True

        if self.scheduler.find_in_flight(request_id) is not None:
            self._cancelled.add(request_id)
            logger.info(f"[ENGINE] request {request_id} in flight, result will be discarded")
            return True

        return False

    def get_stats(self) -> StatsSnapshot:
        return self.statistics.snapshot()

    def reset_stats(self) -> None:
        self.statistics.reset()

    def invalidate_cache(self, fingerprint: Optional[str] = None) -> int:
        """캐시 무효화

        Args:
            fingerprint: 대상 키 (None이면 전체)

        Returns:
            int: 제거된 엔트리 수
        """
        if fingerprint is None:
            removed = len(self.cache)
            self.cache.clear()
            logger.info(f"[ENGINE] cache cleared ({removed} entries)")
            return removed
        return 1 if self.cache.invalidate(fingerprint) else 0

    def get_history(self, limit: Optional[int] = None) -> list[ExecutionResult]:
        """최근 완료 결과 (오래된 것부터)"""
        history = list(self._history)
        if limit is not None:
            history = history[-limit:] if limit > 0 else []
        return history

    def is_idle(self) -> bool:
        return self.scheduler.is_idle()

    def get_health(self) -> dict[str, Any]:
        """엔진 상태 요약"""
        return {
            "healthy": not self._closed,
            "closed": self._closed,
            "requests": {
                "in_flight": self.scheduler.in_flight_count,
                "awaiting": self._awaiting,
                "concurrency_limit": self.config.concurrency_limit,
                "saturated": self._awaiting >= self.config.concurrency_limit,
            },
            "scheduler": self.scheduler.snapshot(),
            "cache": self.cache.stats(),
            "stats": self.get_stats().to_dict(),
            "config": self.config.summary(),
        }

    async def close(self) -> None:
        """실행 중 작업 정리 및 transport 종료"""
        if self._closed:
            return
        self._closed = True

        pump = self._pump_task
        if pump is not None:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)

        for request in self.scheduler.clear():
            request.transition(RequestState.CANCELLED)
            self._publish(ExecutionResult.cancelled(request, RequestCancelledException(request.request_id)))
        for waiter in list(self._waiters.values()):
            if not waiter.done():
                waiter.cancel()
        self._waiters.clear()

        closer = getattr(self.transport, "close", None)
        if closer is not None:
            try:
                await closer()
            except Exception as e:
                logger.warning(f"[ENGINE] transport close failed: {type(e).__name__}: {e}")
        logger.info("[ENGINE] closed")

    async def __aenter__(self) -> "QueryEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _validate(self, text: Any, request_id: str) -> Optional[QueryEngineException]:
        if self._closed:
            return InvalidQueryException("engine is closed")
        if not isinstance(text, str) or not text.strip():
            return InvalidQueryException("query text must be a non-empty string")
        if len(text) > MAX_QUERY_LENGTH:
            return InvalidQueryException(f"query text exceeds {MAX_QUERY_LENGTH} characters")
        if request_id in self._waiters or self.scheduler.is_pending(request_id) \
                or self.scheduler.find_in_flight(request_id) is not None:
            return ValidationException("request_id", f"duplicate request id {request_id}")
        return None

    def _schedule_batch(self, request: QueryRequest) -> None:
        self.scheduler.enqueue_batch(request)
        self._track(request)

    def _ensure_pump(self) -> Optional[asyncio.Task]:
        if self._pump_task is not None and not self._pump_task.done():
            return self._pump_task
        if self.scheduler.is_idle():
            return None
        self._pump_task = asyncio.create_task(self._pump())
        return self._pump_task

    async def _pump(self) -> None:
        """스케줄러 구동 루프 (idle이 되면 종료)

        요청을 하나씩 끝까지 실행합니다. 부모가 자식을 스택에 넣은 뒤에야
        다음 요청을 꺼내므로 트리 내부는 정확한 깊이 우선 순서가 됩니다.
        """
        logger.debug(f"[ENGINE] pump started: {self.scheduler!r}")
        try:
            while True:
                request = self.scheduler.next()
                if request is None:
                    break
                self.scheduler.mark_in_flight(request)
                await self._run(request)
        finally:
            self._pump_task = None
            logger.debug("[ENGINE] pump stopped")

    async def _run(self, request: QueryRequest) -> None:
        try:
            try:
                result = await self._execute(request)
            except Exception as e:
                logger.error(
                    f"[ENGINE] execution crashed: request={request.request_id}, error={type(e).__name__}: {e}",
                    exc_info=True,
                )
                result = ExecutionResult.failed(request, UnexpectedTransportException(str(e)))
            self._complete(request, result)
        finally:
            self.scheduler.mark_done(request)

    async def _execute(self, request: QueryRequest) -> ExecutionResult:
        # 큐에서 기다리는 동안 같은 fingerprint가 캐시될 수 있으므로 실행 직전 재조회
        cached = self._cache_lookup(request)
        if cached is not CACHE_MISS:
            return ExecutionResult.from_cache(request, cached)

        self.statistics.record_executed()
        logger.debug(
            f"[ENGINE] executing: id={request.request_id}, mode={request.mode.value}, "
            f"depth={request.depth}, query='{sanitize_for_log(request.text)}'"
        )
        return await self.executor.execute(request)

    def _cache_lookup(self, request: QueryRequest, count_miss: bool = True) -> Any:
        if not self.config.cache_enabled:
            return CACHE_MISS
        cached = self.cache.get(request.fingerprint)
        if cached is CACHE_MISS:
            if count_miss:
                self.statistics.record_cache_miss()
            return CACHE_MISS
        # 결과가 응답을 단독 소유하도록 복사본 반환
        copied = self._copy_response(request, cached)
        if copied is CACHE_MISS:
            self.cache.invalidate(request.fingerprint)
            if count_miss:
                self.statistics.record_cache_miss()
            return CACHE_MISS
        self.statistics.record_cache_hit()
        return copied

    def _store(self, request: QueryRequest, response: Any) -> None:
        copied = self._copy_response(request, response)
        if copied is not CACHE_MISS:
            self.cache.put(request.fingerprint, copied)

    @staticmethod
    def _copy_response(request: QueryRequest, response: Any) -> Any:
        """응답 deepcopy (복사할 수 없는 페이로드면 CACHE_MISS)"""
        try:
            return copy.deepcopy(response)
        except Exception as e:
            logger.warning(
                f"[ENGINE] response not cacheable: request={request.request_id}, "
                f"error={type(e).__name__}: {e}"
            )
            return CACHE_MISS

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _complete(self, request: QueryRequest, result: ExecutionResult) -> None:
        rejected = []

        if request.request_id in self._cancelled:
            self._cancelled.discard(request.request_id)
            request.transition(RequestState.CANCELLED)
            self.statistics.record_cancelled()
            logger.info(f"[ENGINE] discarded result of cancelled request {request.request_id}")
            result = ExecutionResult.cancelled(
                request, RequestCancelledException(request.request_id), attempts=result.attempts
            )
        elif result.success:
            request.transition(RequestState.SUCCEEDED)
            if not result.served_from_cache:
                self.statistics.record_success()
                if self.config.cache_enabled:
                    self._store(request, result.response)
            if self.config.follow_up_enabled:
                outcome = self.expander.expand(request, result)
                for child in outcome.scheduled:
                    self._track(child)
                rejected = outcome.rejected
        else:
            request.transition(RequestState.FAILED)
            self.statistics.record_failure()

        self._publish(result)
        for child, error in rejected:
            self.statistics.record_failure()
            self._publish(ExecutionResult.failed(child, error))
        self._untrack(request)

    def _finish_unscheduled(self, result: ExecutionResult) -> ExecutionResult:
        if not result.success:
            self.statistics.record_failure()
        self._publish(result)
        return result

    def _publish(self, result: ExecutionResult) -> None:
        self._history.append(result)
        for collected in self._collectors:
            collected.append(result)
        waiter = self._waiters.pop(result.request_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(result)

    def _track(self, request: QueryRequest) -> None:
        self._outstanding[request.root_id] = self._outstanding.get(request.root_id, 0) + 1

    def _untrack(self, request: QueryRequest) -> None:
        remaining = self._outstanding.get(request.root_id, 0) - 1
        if remaining > 0:
            self._outstanding[request.root_id] = remaining
            return
        self._outstanding.pop(request.root_id, None)
        self.expander.forget_root(request.root_id)

    def __repr__(self) -> str:
        return f"QueryEngine({self.scheduler!r}, {self.cache!r}, {self.statistics!r})"
