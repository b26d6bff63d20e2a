"""
Execution Governor for apiflow.

The governor owns every rule that sits around node execution rather
than inside it:

- Entry validation: exactly one httpMethod node
- Method and route matching against the request
- Cycle detection: visited-set check before each node runs
- Deadline: one wall-clock budget per execution, checked at node
  boundaries and propagated into every suspension point
- Result assembly: success and failure both become ExecutionResult

It is also the single place that converts exceptions into responses.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, TypeVar

from apiflow.flow import JSON_CONTENT_TYPE, ExecutionResult, NodeKind, match_route

from .errors import (
    ConfigurationError,
    DeadlineExceeded,
    FlowError,
    MethodNotAllowed,
    RouteNotFound,
    TraversalCycle,
    UnreachedResponse,
)

if TYPE_CHECKING:
    from apiflow.config import EngineSettings
    from apiflow.flow import FlowDocument, FlowNode, RequestContext

    from .context import ExecutionContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Deadline
# =============================================================================


@dataclass
class Deadline:
    """
    Wall-clock budget for one execution.

    Checked cooperatively: node boundaries call check(), and store calls
    and delays run through run()/sleep() so they never outlive the budget.
    """

    budget_ms: float
    started: float = field(default_factory=time.monotonic)

    @property
    def remaining_s(self) -> float:
        return max(0.0, self.budget_ms / 1000 - (time.monotonic() - self.started))

    @property
    def expired(self) -> bool:
        return self.remaining_s <= 0

    def check(self) -> None:
        if self.expired:
            raise DeadlineExceeded(self.budget_ms)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await within the remaining budget."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.remaining_s)
        except asyncio.TimeoutError:
            raise DeadlineExceeded(self.budget_ms) from None

    async def sleep(self, seconds: float) -> None:
        """Sleep, but never past the deadline."""
        if seconds > self.remaining_s:
            await asyncio.sleep(self.remaining_s)
            raise DeadlineExceeded(self.budget_ms)
        await asyncio.sleep(seconds)


# =============================================================================
# Governor
# =============================================================================


class ExecutionGovernor:
    """
    Guards one flow execution and assembles its result.

    Args:
        settings: Engine bounds (deadline budget)
        expose_error_details: Attach internal diagnostics to error bodies.
            Only enable outside production.
    """

    def __init__(self, settings: EngineSettings, *, expose_error_details: bool = False):
        self._settings = settings
        self._expose_error_details = expose_error_details

    def new_deadline(self) -> Deadline:
        return Deadline(budget_ms=self._settings.deadline_ms)

    # Entry ------------------------------------------------------------------

    def select_entry(self, flow: FlowDocument) -> FlowNode:
        entries = flow.nodes_of_kind(NodeKind.HTTP_METHOD)
        if not entries:
            raise ConfigurationError("No HTTP method start node found", status=400)
        if len(entries) > 1:
            ids = ", ".join(node.id for node in entries)
            raise ConfigurationError(f"Flow has multiple HTTP method start nodes: {ids}", status=400)
        return entries[0]

    def check_method(self, entry: FlowNode, request: RequestContext) -> None:
        allowed = entry.config.get("method")
        if allowed and str(allowed).upper() != request.method:
            raise MethodNotAllowed(request.method, str(allowed).upper())

    def match_route(self, entry: FlowNode, request: RequestContext) -> dict[str, str]:
        """Route parameters captured by the entry node's path pattern."""
        pattern = entry.config.get("path")
        if not pattern:
            return {}
        params = match_route(str(pattern), request.path)
        if params is None:
            raise RouteNotFound(f"Path {request.path} does not match {pattern}")
        return params

    # Traversal guards -------------------------------------------------------

    def enter(self, node: FlowNode, ctx: ExecutionContext) -> None:
        """Called before every node executes."""
        if node.id in ctx.visited:
            raise TraversalCycle(node.id, node.label)
        ctx.visited.add(node.id)
        ctx.deadline.check()

    async def race(self, traversal: Awaitable[Any], deadline: Deadline) -> None:
        """Run the traversal against the deadline timer."""
        try:
            await asyncio.wait_for(traversal, timeout=deadline.remaining_s)
        except asyncio.TimeoutError:
            raise DeadlineExceeded(deadline.budget_ms) from None

    # Results ----------------------------------------------------------------

    def finalize(self, ctx: ExecutionContext) -> ExecutionResult:
        if ctx.response is None:
            raise UnreachedResponse("No response node reached")
        return ctx.response

    def failure(self, exc: BaseException, ctx: ExecutionContext | None = None) -> ExecutionResult:
        """Translate any failure into the externally visible result."""
        if isinstance(exc, FlowError):
            status = exc.status
            public_message = exc.public_message
        else:
            status = 500
            public_message = "Internal Server Error"

        body: dict[str, Any] = {"error": public_message}
        if self._expose_error_details:
            body["message"] = str(exc)
            body["details"] = list(ctx.errors) if ctx is not None else []

        return ExecutionResult(
            status=status,
            headers={"Content-Type": JSON_CONTENT_TYPE},
            body=body,
        )
