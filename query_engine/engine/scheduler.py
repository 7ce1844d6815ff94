"""Query Scheduler - FIFO queue for batch work, LIFO stack for recursive work

Selection rule: the stack is drained before the queue is touched, so a tree
of follow-ups completes depth-first before sibling batch items run.
"""

from __future__ import annotations

from collections import deque
from typing import Optional

from query_engine.core.exceptions import DepthExceededException, QueueFullException
from query_engine.core.logging import logger, sanitize_for_log

from .request import QueryMode, QueryRequest, RequestState


class QueryScheduler:
    """Queue + Stack 스케줄러

    - enqueue_batch: 큐 뒤에 추가 (FIFO)
    - push_recursive: 스택 위에 추가 (LIFO), 깊이 초과 시 거절
    - next: 스택 → 큐 순서로 하나 꺼냄
    - is_idle: 두 구조가 비어 있고 실행 중인 요청이 없음

    Usage:
        scheduler = QueryScheduler(max_depth=5)
        scheduler.enqueue_batch(request)

        while (request := scheduler.next()) is not None:
            scheduler.mark_in_flight(request)
            ...
            scheduler.mark_done(request)
    """

    def __init__(self, max_depth: int = 5, max_size: Optional[int] = None):
        """
        Args:
            max_depth: 허용되는 최대 재귀 깊이 (초과 시 DepthExceeded)
            max_size: queue/stack 각각의 최대 크기 (None이면 무제한)
        """
        if max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if max_size is not None and max_size <= 0:
            raise ValueError("max_size must be positive")

        self.max_depth = max_depth
        self.max_size = max_size
        self._queue: deque[QueryRequest] = deque()
        self._stack: list[QueryRequest] = []
        self._in_flight: dict[str, QueryRequest] = {}

    def enqueue_batch(self, request: QueryRequest) -> None:
        """batch 요청을 큐 뒤에 추가

        Raises:
            QueueFullException: 큐가 가득 찬 경우
        """
        if self.max_size is not None and len(self._queue) >= self.max_size:
            logger.warning(f"[SCHEDULER] queue full (max {self.max_size}), rejected {request.request_id}")
            raise QueueFullException("queue", self.max_size)
        self._queue.append(request)
        logger.debug(
            f"[SCHEDULER] enqueued batch: id={request.request_id}, "
            f"query='{sanitize_for_log(request.text)}', queue={len(self._queue)}"
        )

    def push_recursive(self, request: QueryRequest) -> None:
        """recursive 요청을 스택에 push

        Raises:
            DepthExceededException: depth > max_depth (스택에 넣지 않음)
            QueueFullException: 스택이 가득 찬 경우
        """
        if request.mode is not QueryMode.RECURSIVE:
            raise ValueError(f"push_recursive expects a recursive request, got {request.mode.value}")
        if request.depth > self.max_depth:
            logger.warning(
                f"[SCHEDULER] depth {request.depth} > max {self.max_depth}, "
                f"rejected {request.request_id} (parent={request.parent_id})"
            )
            raise DepthExceededException(request.depth, self.max_depth)
        if self.max_size is not None and len(self._stack) >= self.max_size:
            logger.warning(f"[SCHEDULER] stack full (max {self.max_size}), rejected {request.request_id}")
            raise QueueFullException("stack", self.max_size)
        self._stack.append(request)
        logger.debug(
            f"[SCHEDULER] pushed recursive: id={request.request_id}, depth={request.depth}, "
            f"query='{sanitize_for_log(request.text)}', stack={len(self._stack)}"
        )

    def next(self) -> Optional[QueryRequest]:
        """다음 실행 요청 (스택 우선, 없으면 큐, 둘 다 비면 None)"""
        if self._stack:
            return self._stack.pop()
        if self._queue:
            return self._queue.popleft()
        return None

    def mark_in_flight(self, request: QueryRequest) -> None:
        request.transition(RequestState.IN_FLIGHT)
        self._in_flight[request.request_id] = request

    def mark_done(self, request: QueryRequest) -> None:
        self._in_flight.pop(request.request_id, None)

    def cancel(self, request_id: str) -> Optional[QueryRequest]:
        """대기 중인 요청 제거

        Returns:
            제거된 요청 (대기 중이 아니면 None - 실행 중 요청은 제거하지 않음)
        """
        for index, request in enumerate(self._stack):
            if request.request_id == request_id:
                del self._stack[index]
                return request
        for request in self._queue:
            if request.request_id == request_id:
                self._queue.remove(request)
                return request
        return None

    def find_in_flight(self, request_id: str) -> Optional[QueryRequest]:
        return self._in_flight.get(request_id)

    def is_pending(self, request_id: str) -> bool:
        return any(r.request_id == request_id for r in self._stack) or any(
            r.request_id == request_id for r in self._queue
        )

    def is_idle(self) -> bool:
        return not self._stack and not self._queue and not self._in_flight

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def stack_size(self) -> int:
        return len(self._stack)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def pending_count(self) -> int:
        return len(self._queue) + len(self._stack)

    def clear(self) -> list[QueryRequest]:
        """대기 요청 전부 제거 (실행 중 요청은 유지)

        Returns:
            제거된 요청 목록 (스택 pop 순서, 그다음 큐 순서)
        """
        dropped = list(reversed(self._stack)) + list(self._queue)
        self._stack.clear()
        self._queue.clear()
        return dropped

    def snapshot(self) -> dict[str, int]:
        return {
            "queue_size": self.queue_size,
            "stack_size": self.stack_size,
            "in_flight": self.in_flight_count,
            "max_depth": self.max_depth,
        }

    def __repr__(self) -> str:
        return (
            f"QueryScheduler(queue={len(self._queue)}, stack={len(self._stack)}, "
            f"in_flight={len(self._in_flight)}, max_depth={self.max_depth})"
        )
