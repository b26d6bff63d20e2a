"""
Tests for the execution governor and deadline.
"""
import asyncio

import pytest

from apiflow.config import EngineSettings
from apiflow.engine.errors import (
    ConfigurationError,
    DataAccessError,
    DeadlineExceeded,
    MethodNotAllowed,
    RouteNotFound,
    TraversalCycle,
    UnreachedResponse,
)
from apiflow.engine.governor import Deadline, ExecutionGovernor
from apiflow.flow import FlowDocument, FlowNode, RequestContext


@pytest.fixture
def governor():
    return ExecutionGovernor(EngineSettings(deadline_ms=2000))


def entry_node(node, **config):
    return FlowNode.model_validate(node("entry", "httpMethod", **config))


# =============================================================================
# Deadline
# =============================================================================


class TestDeadline:
    def test_fresh_deadline_has_budget(self):
        deadline = Deadline(budget_ms=1000)

        assert not deadline.expired
        assert 0 < deadline.remaining_s <= 1.0
        deadline.check()

    def test_expired_deadline(self):
        deadline = Deadline(budget_ms=10, started=0.0)

        assert deadline.expired
        assert deadline.remaining_s == 0.0
        with pytest.raises(DeadlineExceeded):
            deadline.check()

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        async def work():
            return "done"

        assert await Deadline(budget_ms=1000).run(work()) == "done"

    @pytest.mark.asyncio
    async def test_run_is_cut_off(self):
        with pytest.raises(DeadlineExceeded):
            await Deadline(budget_ms=20).run(asyncio.sleep(5))

    @pytest.mark.asyncio
    async def test_sleep_past_deadline_raises(self):
        deadline = Deadline(budget_ms=20)

        with pytest.raises(DeadlineExceeded):
            await deadline.sleep(5)

    @pytest.mark.asyncio
    async def test_sleep_within_budget(self):
        await Deadline(budget_ms=1000).sleep(0)


# =============================================================================
# Entry Validation
# =============================================================================


class TestSelectEntry:
    def test_single_entry(self, governor, node):
        flow = FlowDocument.model_validate(
            {"nodes": [node("entry", "httpMethod"), node("ok", "response")]}
        )

        assert governor.select_entry(flow).id == "entry"

    def test_no_entry(self, governor, node):
        flow = FlowDocument.model_validate({"nodes": [node("ok", "response")]})

        with pytest.raises(ConfigurationError) as exc_info:
            governor.select_entry(flow)

        assert exc_info.value.status == 400
        assert str(exc_info.value) == "No HTTP method start node found"

    def test_several_entries(self, governor, node):
        flow = FlowDocument.model_validate(
            {"nodes": [node("a", "httpMethod"), node("b", "httpMethod")]}
        )

        with pytest.raises(ConfigurationError):
            governor.select_entry(flow)


class TestRequestMatching:
    def test_method_mismatch(self, governor, node):
        with pytest.raises(MethodNotAllowed) as exc_info:
            governor.check_method(entry_node(node, method="post"), RequestContext(method="get"))

        assert exc_info.value.status == 405
        assert exc_info.value.allowed == "POST"

    def test_route_captures(self, governor, node):
        entry = entry_node(node, path="/orders/:orderId/items/:itemId")

        params = governor.match_route(entry, RequestContext(path="/orders/7/items/a%20b"))

        assert params == {"orderId": "7", "itemId": "a b"}

    def test_route_mismatch(self, governor, node):
        with pytest.raises(RouteNotFound):
            governor.match_route(entry_node(node, path="/users/:id"), RequestContext(path="/users"))

    def test_no_pattern_matches_everything(self, governor, node):
        assert governor.match_route(entry_node(node), RequestContext(path="/anything/at/all")) == {}


# =============================================================================
# Traversal Guards
# =============================================================================


class TestEnter:
    def test_marks_visited(self, governor, make_context, node):
        ctx = make_context()
        entry = entry_node(node)

        governor.enter(entry, ctx)

        assert ctx.visited == {"entry"}

    def test_second_visit_is_a_cycle(self, governor, make_context, node):
        ctx = make_context()
        entry = entry_node(node)
        governor.enter(entry, ctx)

        with pytest.raises(TraversalCycle) as exc_info:
            governor.enter(entry, ctx)

        assert exc_info.value.node_id == "entry"

    def test_expired_deadline_stops_traversal(self, governor, make_context, node):
        ctx = make_context(budget_ms=1)
        ctx.deadline.started = 0.0

        with pytest.raises(DeadlineExceeded):
            governor.enter(entry_node(node), ctx)

    @pytest.mark.asyncio
    async def test_race_times_out(self, governor):
        with pytest.raises(DeadlineExceeded):
            await governor.race(asyncio.sleep(5), Deadline(budget_ms=20))


# =============================================================================
# Results
# =============================================================================


class TestResults:
    def test_finalize_requires_response(self, governor, make_context):
        with pytest.raises(UnreachedResponse):
            governor.finalize(make_context())

    @pytest.mark.parametrize(
        "exc, status, message",
        [
            (MethodNotAllowed("GET", "POST"), 405, "Method Not Allowed"),
            (DeadlineExceeded(5000), 500, "Flow execution timed out"),
            (TraversalCycle("a", "a"), 500, "Cycle detected in flow"),
            (DataAccessError("Find", "users", "boom"), 500, "Data access failed"),
            (RuntimeError("secret detail"), 500, "Internal Server Error"),
        ],
    )
    def test_failure_hides_details(self, governor, exc, status, message):
        result = governor.failure(exc)

        assert result.status == status
        assert result.body == {"error": message}
        assert result.headers == {"Content-Type": "application/json"}

    def test_failure_with_details(self, make_context):
        governor = ExecutionGovernor(EngineSettings(), expose_error_details=True)
        ctx = make_context()
        ctx.record_error("Unsupported node type: sendEmail")

        result = governor.failure(RuntimeError("boom"), ctx)

        assert result.body == {
            "error": "Internal Server Error",
            "message": "boom",
            "details": ["Unsupported node type: sendEmail"],
        }
