"""QueryScheduler 단위 테스트 (stack 우선, FIFO queue)"""

import pytest

from query_engine.core.exceptions import DepthExceededException, QueueFullException
from query_engine.engine.request import QueryMode, QueryRequest, RequestState
from query_engine.engine.scheduler import QueryScheduler


def batch(text: str) -> QueryRequest:
    return QueryRequest.batch(text, f"fp:{text}")


class TestSchedulerOrdering:
    def test_queue_is_fifo(self):
        scheduler = QueryScheduler()
        for text in ("b1", "b2", "b3"):
            scheduler.enqueue_batch(batch(text))

        assert [scheduler.next().text for _ in range(3)] == ["b1", "b2", "b3"]
        assert scheduler.next() is None

    def test_stack_drains_before_queue(self):
        scheduler = QueryScheduler()
        root = batch("root")
        scheduler.enqueue_batch(batch("b1"))
        scheduler.push_recursive(root.derive("d1", "fp:d1"))
        scheduler.push_recursive(root.derive("d2", "fp:d2"))

        order = []
        while (request := scheduler.next()) is not None:
            order.append(request.text)

        assert order == ["d2", "d1", "b1"]

    def test_empty_scheduler_is_idle(self):
        scheduler = QueryScheduler()
        assert scheduler.is_idle()
        assert scheduler.next() is None

    def test_in_flight_request_keeps_scheduler_busy(self):
        scheduler = QueryScheduler()
        scheduler.enqueue_batch(batch("b1"))
        request = scheduler.next()

        scheduler.mark_in_flight(request)
        assert not scheduler.is_idle()
        assert request.state == RequestState.IN_FLIGHT
        assert scheduler.find_in_flight(request.request_id) is request

        scheduler.mark_done(request)
        assert scheduler.is_idle()


class TestSchedulerGuards:
    def test_depth_at_max_is_accepted(self):
        scheduler = QueryScheduler(max_depth=1)
        child = batch("root").derive("child", "fp:child")

        scheduler.push_recursive(child)
        assert scheduler.stack_size == 1

    def test_depth_beyond_max_is_rejected(self):
        scheduler = QueryScheduler(max_depth=1)
        grandchild = batch("root").derive("c", "fp:c").derive("gc", "fp:gc")

        with pytest.raises(DepthExceededException) as exc_info:
            scheduler.push_recursive(grandchild)

        assert exc_info.value.error_code == "DEPTH_EXCEEDED"
        assert exc_info.value.depth == 2
        assert scheduler.stack_size == 0

    def test_push_recursive_requires_recursive_mode(self):
        scheduler = QueryScheduler()
        with pytest.raises(ValueError):
            scheduler.push_recursive(batch("b1"))

    def test_queue_full(self):
        scheduler = QueryScheduler(max_size=1)
        scheduler.enqueue_batch(batch("b1"))

        with pytest.raises(QueueFullException) as exc_info:
            scheduler.enqueue_batch(batch("b2"))
        assert exc_info.value.error_code == "QUEUE_FULL"

    @pytest.mark.parametrize("max_depth,max_size", [(-1, None), (1, 0)])
    def test_invalid_limits(self, max_depth, max_size):
        with pytest.raises(ValueError):
            QueryScheduler(max_depth=max_depth, max_size=max_size)


class TestSchedulerCancel:
    def test_cancel_pending_from_queue(self):
        scheduler = QueryScheduler()
        target = batch("b1")
        scheduler.enqueue_batch(target)
        scheduler.enqueue_batch(batch("b2"))

        assert scheduler.cancel(target.request_id) is target
        assert scheduler.next().text == "b2"

    def test_cancel_pending_from_stack(self):
        scheduler = QueryScheduler()
        child = batch("root").derive("d1", "fp:d1")
        scheduler.push_recursive(child)

        assert scheduler.cancel(child.request_id) is child
        assert scheduler.stack_size == 0

    def test_cancel_unknown_returns_none(self):
        assert QueryScheduler().cancel("missing") is None

    def test_clear_returns_pending(self):
        scheduler = QueryScheduler()
        scheduler.enqueue_batch(batch("b1"))
        scheduler.push_recursive(batch("root").derive("d1", "fp:d1"))

        removed = scheduler.clear()

        assert {r.text for r in removed} == {"b1", "d1"}
        assert scheduler.pending_count == 0

    def test_snapshot(self):
        scheduler = QueryScheduler()
        scheduler.enqueue_batch(batch("b1"))

        snap = scheduler.snapshot()
        assert snap["queue_size"] == 1
        assert snap["stack_size"] == 0
