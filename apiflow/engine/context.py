"""
Execution Context for apiflow.

The context holds the request-scoped state of one flow execution:
the isolated copy of the request, accumulated variables, the error
trail, the visited set used for cycle detection, and the response once
a response node sets it.

A context is created at the start of FlowEngine.execute, mutated only
by that execution, and discarded when it returns. It is never shared
between requests.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from apiflow.flow import ExecutionResult, FlowDocument, RequestContext
    from apiflow.tenant.store import TenantDataStore

    from .governor import Deadline


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Marker for "no node has bound a result yet"
_UNSET: Any = object()


@dataclass(frozen=True)
class BranchDecision:
    """
    Records which handle a branching node took.

    Stored in ExecutionContext.branch_decisions for debugging and
    audit trail.
    """

    timestamp: datetime
    node_id: str
    node_kind: str
    selected_handle: str
    evaluated: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "node_id": self.node_id,
            "node_kind": self.node_kind,
            "selected_handle": self.selected_handle,
            "evaluated": self.evaluated,
        }


@dataclass
class ExecutionContext:
    """
    Request-scoped state of one flow execution.

    Provides:
    - Unique execution ID for tracing
    - The flow being executed (read-only) and the tenant store
    - An alias-free copy of the inbound request
    - Variables keyed by node id or assigned name
    - Ordered error/warning trail
    - Visited node ids (cycle detection)
    - The response, once a response node has run
    """

    flow: FlowDocument
    request: dict[str, Any]
    deadline: Deadline
    store: TenantDataStore | None = None

    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)

    variables: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    visited: set[str] = field(default_factory=set)
    response: ExecutionResult | None = None

    # Audit trail
    node_timings: dict[str, float] = field(default_factory=dict)
    branch_decisions: list[BranchDecision] = field(default_factory=list)

    _last_result: Any = field(default=_UNSET, repr=False)

    @classmethod
    def create(
        cls,
        flow: FlowDocument,
        request: RequestContext,
        deadline: Deadline,
        store: TenantDataStore | None = None,
    ) -> "ExecutionContext":
        """
        Build a fresh context for one execution.

        The request is deep-copied so nothing a flow does can reach the
        caller's objects.
        """
        return cls(
            flow=flow,
            request=copy.deepcopy(request.model_dump()),
            deadline=deadline,
            store=store,
        )

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since execution started."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    @property
    def last_result(self) -> Any:
        """Most recent implicit node result, or None."""
        return None if self._last_result is _UNSET else self._last_result

    def bind_result(self, node_id: str, value: Any) -> None:
        """Store a node's implicit result under its id."""
        self.variables[node_id] = value
        self._last_result = value

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    def record_failure(self, exc: BaseException) -> None:
        """Add a propagating failure to the error trail, once."""
        message = str(exc)
        if not self.errors or self.errors[-1] != message:
            self.errors.append(message)

    def record_timing(self, node_id: str, duration_ms: float) -> None:
        self.node_timings[node_id] = duration_ms

    def record_branch(
        self,
        node_id: str,
        node_kind: str,
        selected_handle: str,
        evaluated: str | None = None,
    ) -> None:
        self.branch_decisions.append(
            BranchDecision(
                timestamp=_utc_now(),
                node_id=node_id,
                node_kind=node_kind,
                selected_handle=selected_handle,
                evaluated=evaluated,
            )
        )

    def to_audit_dict(self) -> dict[str, Any]:
        """Generate audit record for logging."""
        return {
            "execution_id": str(self.execution_id),
            "flow_id": self.flow.id,
            "flow_version": self.flow.version,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms,
            "method": self.request.get("method"),
            "path": self.request.get("path"),
            "visited": sorted(self.visited),
            "node_timings": self.node_timings,
            "branch_decisions": [d.to_dict() for d in self.branch_decisions],
            "errors": list(self.errors),
        }
