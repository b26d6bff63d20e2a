"""
Tests for ExecutionContext.
"""
from apiflow.engine import ExecutionContext
from apiflow.engine.governor import Deadline
from apiflow.flow import FlowDocument, RequestContext


class TestExecutionContext:
    def test_create_copies_request(self, node):
        flow = FlowDocument.model_validate({"id": "f", "nodes": [node("entry", "httpMethod")]})
        request = RequestContext(method="POST", path="/", body={"tags": ["a"]})

        ctx = ExecutionContext.create(flow, request, Deadline(budget_ms=1000))
        ctx.request["body"]["tags"].append("b")

        assert request.body == {"tags": ["a"]}
        assert ctx.store is None

    def test_contexts_are_independent(self, make_context):
        first, second = make_context(), make_context()
        first.variables["x"] = 1
        first.visited.add("entry")

        assert second.variables == {}
        assert second.visited == set()
        assert first.execution_id != second.execution_id

    def test_last_result(self, make_context):
        ctx = make_context()
        assert ctx.last_result is None

        ctx.bind_result("a", [])
        ctx.bind_result("b", {"n": 1})

        assert ctx.last_result == {"n": 1}
        assert ctx.variables == {"a": [], "b": {"n": 1}}

    def test_audit_dict(self, make_context):
        ctx = make_context(request={"method": "GET", "path": "/users/1"})
        ctx.visited.update({"b", "a"})
        ctx.record_timing("a", 1.5)
        ctx.record_branch("a", "condition", "if", evaluated="true")
        ctx.record_error("warning")

        audit = ctx.to_audit_dict()

        assert audit["flow_id"] == "ctx-flow"
        assert (audit["method"], audit["path"]) == ("GET", "/users/1")
        assert audit["visited"] == ["a", "b"]
        assert audit["node_timings"] == {"a": 1.5}
        assert audit["branch_decisions"][0]["selected_handle"] == "if"
        assert audit["errors"] == ["warning"]
        assert audit["duration_ms"] >= 0

    def test_record_failure_skips_repeat(self, make_context):
        ctx = make_context()
        ctx.record_error("Expression error: x -> boom")

        ctx.record_failure(RuntimeError("Expression error: x -> boom"))
        ctx.record_failure(RuntimeError("No response node reached"))

        assert ctx.errors == ["Expression error: x -> boom", "No response node reached"]
