"""FollowUpExpander 단위 테스트"""

from __future__ import annotations

import pytest

from query_engine.core.exceptions import TransportError, TransportErrorClass
from query_engine.engine.expander import FollowUpExpander
from query_engine.engine.request import QueryMode, QueryRequest, RequestState
from query_engine.engine.result import ExecutionResult
from query_engine.engine.scheduler import QueryScheduler
from query_engine.engine.statistics import QueryStatistics
from query_engine.transport.base import AgentResponse
from query_engine.utils.hash_utils import generate_fingerprint


class RaisingDetector:
    def analyze(self, response):
        raise RuntimeError("detector exploded")


def succeeded(request: QueryRequest) -> ExecutionResult:
    return ExecutionResult.succeeded(request, AgentResponse(query=request.text, data={}), attempts=1)


def make_expander(detector, max_depth=5, max_derived=None, max_size=None):
    scheduler = QueryScheduler(max_depth=max_depth, max_size=max_size)
    stats = QueryStatistics()
    expander = FollowUpExpander(scheduler, detector, max_derived_per_root=max_derived, statistics=stats)
    return expander, scheduler, stats


class TestExpansion:
    def test_children_pushed_with_parent_links(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1", "d2"]
        expander, scheduler, stats = make_expander(fake_detector)
        root = QueryRequest.batch("root", "fp:root", context={"conversation_id": "c-1"})

        outcome = expander.expand(root, succeeded(root))

        assert [c.text for c in outcome.scheduled] == ["d1", "d2"]
        for child in outcome.scheduled:
            assert child.mode == QueryMode.RECURSIVE
            assert child.depth == 1
            assert child.parent_id == root.request_id
            assert child.root_id == root.request_id
            assert child.fingerprint == generate_fingerprint(child.text, {"conversation_id": "c-1"})
        assert scheduler.stack_size == 2
        assert scheduler.queue_size == 0
        assert stats.recursive_expansions == 2

    def test_duplicate_and_blank_proposals_dropped(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1", " d1 ", "", "d2"]
        expander, _, _ = make_expander(fake_detector)
        root = QueryRequest.batch("root", "fp:root")

        outcome = expander.expand(root, succeeded(root))

        assert [c.text for c in outcome.scheduled] == ["d1", "d2"]

    def test_failed_result_not_expanded(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1"]
        expander, scheduler, _ = make_expander(fake_detector)
        root = QueryRequest.batch("root", "fp:root")
        failed = ExecutionResult.failed(root, TransportError(TransportErrorClass.UNAUTHORIZED, "401"), attempts=1)

        assert expander.expand(root, failed).proposed_count == 0
        assert fake_detector.analyzed == []
        assert scheduler.stack_size == 0

    def test_cached_result_not_expanded(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1"]
        expander, _, _ = make_expander(fake_detector)
        root = QueryRequest.batch("root", "fp:root")

        outcome = expander.expand(root, ExecutionResult.from_cache(root, AgentResponse(query="root", data={})))

        assert outcome.proposed_count == 0

    def test_detector_error_means_no_expansion(self):
        expander, scheduler, _ = make_expander(RaisingDetector())
        root = QueryRequest.batch("root", "fp:root")

        outcome = expander.expand(root, succeeded(root))

        assert outcome.scheduled == []
        assert scheduler.stack_size == 0


class TestExpansionLimits:
    def test_depth_exceeded_rejected(self, fake_detector):
        fake_detector.follow_ups["child"] = ["grandchild"]
        expander, scheduler, stats = make_expander(fake_detector, max_depth=1)
        child = QueryRequest.batch("root", "fp:root").derive("child", "fp:child")

        outcome = expander.expand(child, succeeded(child))

        assert outcome.scheduled == []
        rejected, error = outcome.rejected[0]
        assert error.error_code == "DEPTH_EXCEEDED"
        assert rejected.state == RequestState.FAILED
        assert stats.depth_exceeded == 1
        assert scheduler.stack_size == 0

    def test_per_root_limit(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1", "d2", "d3"]
        expander, scheduler, stats = make_expander(fake_detector, max_derived=2)
        root = QueryRequest.batch("root", "fp:root")

        outcome = expander.expand(root, succeeded(root))

        assert [c.text for c in outcome.scheduled] == ["d1", "d2"]
        assert [c.text for c, _ in outcome.rejected] == ["d3"]
        assert outcome.rejected[0][1].error_code == "EXPANSION_LIMIT_EXCEEDED"
        assert stats.expansion_limited == 1
        assert expander.derived_count(root.root_id) == 2

    def test_limit_counts_whole_tree(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1"]
        fake_detector.follow_ups["d1"] = ["d1a", "d1b"]
        expander, scheduler, _ = make_expander(fake_detector, max_derived=2)
        root = QueryRequest.batch("root", "fp:root")

        expander.expand(root, succeeded(root))
        child = scheduler.next()
        outcome = expander.expand(child, succeeded(child))

        assert [c.text for c in outcome.scheduled] == ["d1a"]
        assert len(outcome.rejected) == 1

    def test_forget_root_resets_count(self, fake_detector):
        fake_detector.follow_ups["root"] = ["d1"]
        expander, _, _ = make_expander(fake_detector, max_derived=1)
        root = QueryRequest.batch("root", "fp:root")
        expander.expand(root, succeeded(root))

        expander.forget_root(root.root_id)

        assert expander.derived_count(root.root_id) == 0

    def test_negative_limit_rejected(self, fake_detector):
        with pytest.raises(ValueError):
            make_expander(fake_detector, max_derived=-1)
