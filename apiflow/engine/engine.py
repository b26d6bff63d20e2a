"""
Flow Engine for apiflow.

The engine interprets a FlowDocument for one inbound request:

    validate flow -> select entry -> check method/route
        -> walk the graph from the entry node -> assemble result

Execution Model:
- Linear paths are walked iteratively, one node at a time
- Branching nodes (condition) name the handle to follow
- A tryCatch node walks its "try" subgraph in a nested walk; any
  failure except the deadline binds `variables.error` and walks "catch"
- Non-branching nodes may have at most one outgoing edge
- A response node ends the walk; a walk that ends without one fails
- One deadline bounds the whole walk (see governor.Deadline)

execute() never raises: every failure becomes an HTTP-shaped
ExecutionResult through the governor.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from apiflow.config import EngineSettings
from apiflow.flow import FlowDocument, RequestContext

from .context import ExecutionContext
from .errors import ConfigurationError, DeadlineExceeded, FlowError, FlowValidationError, classify
from .expressions import ExpressionEvaluator
from .governor import ExecutionGovernor
from .nodes import NodeOutcome, OutcomeAction, build_executors
from .observability import ExecutionMetrics, FlowLogger, get_metrics

if TYPE_CHECKING:
    from apiflow.flow import ExecutionResult, FlowEdge, FlowNode
    from apiflow.tenant.store import TenantDataStore

logger = logging.getLogger(__name__)


class FlowEngine:
    """
    Interprets flow documents against tenant data stores.

    One engine is shared by all requests; everything request-scoped lives
    on the ExecutionContext created inside execute().

    Example:
        engine = FlowEngine(EngineSettings(deadline_ms=3000))
        result = await engine.execute(flow, {"method": "GET", "path": "/users/42"}, store)
        result.status  # 200
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        evaluator: ExpressionEvaluator | None = None,
        metrics: ExecutionMetrics | None = None,
        expose_error_details: bool = False,
    ):
        self.settings = settings or EngineSettings()
        self.evaluator = evaluator or ExpressionEvaluator(self.settings.expression_timeout_ms)
        self.governor = ExecutionGovernor(self.settings, expose_error_details=expose_error_details)
        self.executors = build_executors(self.evaluator, self.settings)
        self.metrics = metrics or get_metrics()

    async def execute(
        self,
        flow: FlowDocument | dict[str, Any],
        request: RequestContext | dict[str, Any],
        store: TenantDataStore | None = None,
    ) -> ExecutionResult:
        """
        Execute a flow for one request.

        Args:
            flow: Flow document (model or raw JSON form)
            request: Inbound request (model or raw form)
            store: Tenant data store; data nodes fail without one

        Returns:
            ExecutionResult, for success and failure alike
        """
        started = time.perf_counter()
        ctx: ExecutionContext | None = None
        log: FlowLogger | None = None

        try:
            document, entry, request_ctx = self._admit(flow, request)

            deadline = self.governor.new_deadline()
            ctx = ExecutionContext.create(document, request_ctx, deadline, store)
            log = FlowLogger(execution_id=str(ctx.execution_id), flow_id=document.id)
            log.execution_started(
                method=request_ctx.method,
                path=request_ctx.path,
                node_count=len(document.nodes),
            )

            await self.governor.race(self._walk(entry, ctx, log), deadline)
            result = self.governor.finalize(ctx)
        except Exception as exc:
            return self._failed(exc, ctx, log, started)

        duration_ms = (time.perf_counter() - started) * 1000
        log.execution_completed(status=result.status, duration_ms=duration_ms, visited=len(ctx.visited))
        log.execution_audit(ctx.to_audit_dict())
        self.metrics.record_execution(result.status, duration_ms)
        return result

    def precheck(
        self,
        flow: FlowDocument | dict[str, Any],
        request: RequestContext | dict[str, Any],
    ) -> ExecutionResult | None:
        """
        Checks that need no tenant store: flow shape, entry node, method, route.

        Returns:
            The rejection result, or None when execute() may proceed
        """
        try:
            self._admit(flow, request)
        except Exception as exc:
            return self._failed(exc, None, None, time.perf_counter())
        return None

    def _admit(
        self,
        flow: FlowDocument | dict[str, Any],
        request: RequestContext | dict[str, Any],
    ) -> tuple[FlowDocument, FlowNode, RequestContext]:
        document = self._load_flow(flow)
        request_ctx = self._load_request(request)

        entry = self.governor.select_entry(document)
        self.governor.check_method(entry, request_ctx)
        params = self.governor.match_route(entry, request_ctx)
        if params:
            request_ctx = request_ctx.model_copy(
                update={"params": {**request_ctx.params, **params}}
            )
        return document, entry, request_ctx

    # =========================================================================
    # Traversal
    # =========================================================================

    async def _walk(self, node: FlowNode, ctx: ExecutionContext, log: FlowLogger) -> None:
        """Walk from `node` until a terminal node or a dead end."""
        current: FlowNode | None = node
        while current is not None:
            self.governor.enter(current, ctx)
            executor = self.executors[current.kind]

            start_time = time.perf_counter()
            outcome = await executor.execute(current, ctx)
            duration_ms = (time.perf_counter() - start_time) * 1000

            ctx.record_timing(current.id, duration_ms)
            self.metrics.record_node(current.kind.value, duration_ms)
            log.node_completed(node_id=current.id, node_kind=current.kind.value, duration_ms=duration_ms)

            if outcome.action is OutcomeAction.STOP:
                return
            if outcome.action is OutcomeAction.GUARD:
                await self._guard(current, ctx, log)
                return
            current = self._next(current, outcome, ctx, log)

    async def _guard(self, node: FlowNode, ctx: ExecutionContext, log: FlowLogger) -> None:
        """Walk the "try" subgraph; on failure bind `error` and walk "catch"."""
        edges = self._branch_edges(node, ctx.flow)
        try_target = self._target(edges.get("try"), ctx.flow)
        catch_target = self._target(edges.get("catch"), ctx.flow)

        ctx.record_branch(node.id, node.kind.value, "try")
        log.branch_selected(node_id=node.id, node_kind=node.kind.value, handle="try")
        try:
            if try_target is not None:
                await self._walk(try_target, ctx, log)
        except DeadlineExceeded:
            raise
        except Exception as exc:
            logger.info(f"tryCatch {node.id} caught {type(exc).__name__}: {exc}")
            ctx.record_failure(exc)
            ctx.variables["error"] = str(exc)
            ctx.record_branch(node.id, node.kind.value, "catch", evaluated=type(exc).__name__)
            log.branch_selected(node_id=node.id, node_kind=node.kind.value, handle="catch")
            if catch_target is not None:
                await self._walk(catch_target, ctx, log)

    def _next(
        self,
        node: FlowNode,
        outcome: NodeOutcome,
        ctx: ExecutionContext,
        log: FlowLogger,
    ) -> FlowNode | None:
        if outcome.action is OutcomeAction.BRANCH:
            edges = self._branch_edges(node, ctx.flow)
            log.branch_selected(node_id=node.id, node_kind=node.kind.value, handle=outcome.handle)
            return self._target(edges.get(outcome.handle), ctx.flow)

        outgoing = ctx.flow.outgoing(node.id)
        if len(outgoing) > 1:
            raise ConfigurationError(
                f"Node {node.label} has {len(outgoing)} outgoing edges; "
                f"only branching nodes may have more than one",
                node_id=node.id,
            )
        return self._target(outgoing[0] if outgoing else None, ctx.flow)

    def _branch_edges(self, node: FlowNode, flow: FlowDocument) -> dict[str, FlowEdge]:
        """
        Outgoing edges of a branching node keyed by source handle.

        Every edge must leave through one of the kind's handles, at most
        once each.
        """
        handles = node.kind.handles
        edges: dict[str, FlowEdge] = {}
        for edge in flow.outgoing(node.id):
            if edge.source_handle not in handles:
                raise ConfigurationError(
                    f"Edge {edge.id or edge.target} leaves {node.kind.value} node {node.label} "
                    f"through unknown handle {edge.source_handle!r} (expected one of {list(handles)})",
                    node_id=node.id,
                )
            if edge.source_handle in edges:
                raise ConfigurationError(
                    f"Node {node.label} has more than one '{edge.source_handle}' edge",
                    node_id=node.id,
                )
            edges[edge.source_handle] = edge
        return edges

    def _target(self, edge: FlowEdge | None, flow: FlowDocument) -> FlowNode | None:
        if edge is None:
            return None
        return flow.get_node(edge.target)

    # =========================================================================
    # Inputs and failures
    # =========================================================================

    def _load_flow(self, flow: FlowDocument | dict[str, Any]) -> FlowDocument:
        try:
            return FlowDocument.coerce(flow)
        except ValidationError as exc:
            raise FlowValidationError(f"Invalid flow: {exc.error_count()} error(s): {exc}") from exc

    def _load_request(self, request: RequestContext | dict[str, Any]) -> RequestContext:
        try:
            return RequestContext.coerce(request)
        except ValidationError as exc:
            raise FlowValidationError(f"Invalid request context: {exc}") from exc

    def _failed(
        self,
        exc: Exception,
        ctx: ExecutionContext | None,
        log: FlowLogger | None,
        started: float,
    ) -> ExecutionResult:
        if ctx is not None:
            ctx.record_failure(exc)
        result = self.governor.failure(exc, ctx)
        duration_ms = (time.perf_counter() - started) * 1000
        error_type = classify(exc).value

        if not isinstance(exc, FlowError):
            logger.error(f"Unexpected error during flow execution: {exc}", exc_info=True)

        if log is not None:
            log.execution_failed(
                status=result.status,
                error=str(exc),
                error_type=error_type,
                duration_ms=duration_ms,
                node_id=getattr(exc, "node_id", None),
            )
            log.execution_audit(ctx.to_audit_dict())
        else:
            logger.warning(f"Flow rejected before execution ({error_type}): {exc}")

        self.metrics.record_execution(result.status, duration_ms, error_type)
        return result


__all__ = ["FlowEngine"]
