"""
Observability for apiflow flow execution.

Provides structured logging, in-process metrics, and the request log
record handed to the external logging collaborator.

Design Philosophy:
- Structured logging by default (JSON-formatted)
- Minimal overhead: counters and bounded histograms only
- Connection strings and request bodies are never part of a log event
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


# =============================================================================
# Log Levels
# =============================================================================


class LogLevel(Enum):
    """Standard log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Structured Logger Protocol
# =============================================================================


class StructuredLogger(Protocol):
    """
    Protocol for structured logging implementations.

    Structured loggers emit logs as key-value pairs rather than
    plain strings.
    """

    def debug(self, message: str, **context: Any) -> None:
        ...

    def info(self, message: str, **context: Any) -> None:
        ...

    def warning(self, message: str, **context: Any) -> None:
        ...

    def error(self, message: str, **context: Any) -> None:
        ...


# =============================================================================
# JSON Logger Implementation
# =============================================================================


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    Each log entry includes:
    - timestamp (ISO 8601)
    - level
    - message
    - context fields
    - optional execution_id for correlation

    Example output:
        {"timestamp": "2026-01-02T10:30:00Z", "level": "info",
         "message": "Flow execution completed", "execution_id": "abc-123",
         "status": 200, "duration_ms": 12.5}
    """

    name: str = "apiflow"
    execution_id: str | None = None
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **self.extra_context,
            **context,
        }

        if self.execution_id:
            record["execution_id"] = self.execution_id

        log_method = getattr(self._python_logger, level.value)
        log_method(json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> "JSONLogger":
        """Create a new logger with additional context."""
        return JSONLogger(
            name=self.name,
            execution_id=self.execution_id,
            extra_context={**self.extra_context, **extra},
        )


# =============================================================================
# Flow Logger
# =============================================================================


@dataclass
class FlowLogger:
    """
    Specialized logger for flow execution events.

    Example:
        log = FlowLogger(execution_id="abc-123", flow_id="users-get")
        log.execution_started(method="GET", path="/users/42")
        log.node_completed(node_id="find", node_kind="mongoFind", duration_ms=3.2)
        log.execution_completed(status=200, duration_ms=8.1, visited=4)
    """

    execution_id: str
    flow_id: str = ""
    inner: StructuredLogger | None = None

    def __post_init__(self) -> None:
        if self.inner is None:
            self.inner = JSONLogger(
                name="apiflow.engine",
                execution_id=self.execution_id,
                extra_context={"flow_id": self.flow_id} if self.flow_id else {},
            )

    def execution_started(self, method: str, path: str, node_count: int) -> None:
        self.inner.info(
            "Flow execution started",
            method=method,
            path=path,
            node_count=node_count,
        )

    def node_completed(self, node_id: str, node_kind: str, duration_ms: float) -> None:
        self.inner.debug(
            "Node completed",
            node_id=node_id,
            node_kind=node_kind,
            duration_ms=round(duration_ms, 2),
        )

    def branch_selected(self, node_id: str, node_kind: str, handle: str) -> None:
        self.inner.debug(
            "Branch selected",
            node_id=node_id,
            node_kind=node_kind,
            handle=handle,
        )

    def execution_completed(self, status: int, duration_ms: float, visited: int) -> None:
        self.inner.info(
            "Flow execution completed",
            status=status,
            duration_ms=round(duration_ms, 2),
            visited=visited,
        )

    def execution_failed(
        self,
        status: int,
        error: str,
        error_type: str,
        duration_ms: float,
        node_id: str | None = None,
    ) -> None:
        self.inner.error(
            "Flow execution failed",
            status=status,
            error=error,
            error_type=error_type,
            node_id=node_id,
            duration_ms=round(duration_ms, 2),
        )

    def execution_audit(self, audit: dict[str, Any]) -> None:
        self.inner.debug("Flow execution audit", **audit)


# =============================================================================
# Request Log
# =============================================================================


@dataclass
class RequestLogEntry:
    """
    One served gateway request.

    Handed to a RequestLogSink for the external analytics collaborator.
    Carries identifiers and outcome only, never payloads or credentials.
    """

    tenant_id: str
    project_id: str
    method: str
    path: str
    status: int
    duration_ms: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    flow_id: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "flow_id": self.flow_id,
            "method": self.method,
            "path": self.path,
            "status": self.status,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
        }


class RequestLogSink(Protocol):
    """
    Protocol for forwarding request log entries.

    Implementations can forward to:
    - An analytics/logging service (production)
    - In-memory (testing)
    """

    async def record(self, entry: RequestLogEntry) -> None:
        ...


@dataclass
class LoggingRequestLogSink:
    """Writes request log entries as JSON records on the `apiflow.requests` logger."""

    inner: JSONLogger = field(default_factory=lambda: JSONLogger(name="apiflow.requests"))

    async def record(self, entry: RequestLogEntry) -> None:
        level = LogLevel.ERROR if entry.status >= 500 else LogLevel.INFO
        self.inner._log(level, "Gateway request", entry.to_dict())


@dataclass
class InMemoryRequestLogSink:
    """
    In-memory request log for testing.

    Not suitable for production use.
    """

    entries: list[RequestLogEntry] = field(default_factory=list)
    max_entries: int = 1000

    async def record(self, entry: RequestLogEntry) -> None:
        self.entries.append(entry)

        # Prevent unbounded growth
        if len(self.entries) > self.max_entries:
            self.entries = self.entries[-self.max_entries :]

    def clear(self) -> None:
        self.entries.clear()


# =============================================================================
# Metrics
# =============================================================================


@dataclass
class ExecutionMetrics:
    """
    Flow execution metrics.

    Tracks:
    - Execution counts by outcome and status code
    - Failures by error type (timeouts, cycles, data access, ...)
    - Duration histograms per execution and per node kind
    """

    executions_total: int = 0
    executions_success: int = 0
    executions_failed: int = 0
    nodes_executed: int = 0

    status_counts: dict[int, int] = field(default_factory=dict)
    error_counts: dict[str, int] = field(default_factory=dict)

    # Histograms (simplified as lists)
    execution_durations_ms: list[float] = field(default_factory=list)
    node_durations_ms: dict[str, list[float]] = field(default_factory=dict)

    max_histogram_entries: int = 1000

    def record_execution(self, status: int, duration_ms: float, error_type: str | None = None) -> None:
        """Record a finished flow execution."""
        self.executions_total += 1
        if error_type is None:
            self.executions_success += 1
        else:
            self.executions_failed += 1
            self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        self.status_counts[status] = self.status_counts.get(status, 0) + 1
        self.execution_durations_ms.append(duration_ms)
        self._trim_histogram(self.execution_durations_ms)

    def record_node(self, kind: str, duration_ms: float) -> None:
        """Record one node execution."""
        self.nodes_executed += 1
        histogram = self.node_durations_ms.setdefault(kind, [])
        histogram.append(duration_ms)
        self._trim_histogram(histogram)

    @property
    def timeouts_total(self) -> int:
        return self.error_counts.get("timeout_error", 0)

    def _trim_histogram(self, histogram: list[float]) -> None:
        if len(histogram) > self.max_histogram_entries:
            del histogram[: len(histogram) - self.max_histogram_entries]

    def get_stats(self) -> dict[str, Any]:
        """Get summary statistics."""
        def percentile(data: list[float], p: float) -> float | None:
            if not data:
                return None
            sorted_data = sorted(data)
            k = (len(sorted_data) - 1) * p
            f = int(k)
            c = f + 1 if f + 1 < len(sorted_data) else f
            return sorted_data[f] + (k - f) * (sorted_data[c] - sorted_data[f])

        return {
            "executions": {
                "total": self.executions_total,
                "success": self.executions_success,
                "failed": self.executions_failed,
                "success_rate": (
                    self.executions_success / self.executions_total
                    if self.executions_total > 0
                    else None
                ),
            },
            "status_counts": dict(self.status_counts),
            "error_counts": dict(self.error_counts),
            "duration_ms": {
                "p50": percentile(self.execution_durations_ms, 0.5),
                "p95": percentile(self.execution_durations_ms, 0.95),
                "p99": percentile(self.execution_durations_ms, 0.99),
            },
            "nodes_executed": self.nodes_executed,
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self.executions_total = 0
        self.executions_success = 0
        self.executions_failed = 0
        self.nodes_executed = 0
        self.status_counts.clear()
        self.error_counts.clear()
        self.execution_durations_ms.clear()
        self.node_durations_ms.clear()


_global_metrics = ExecutionMetrics()


def get_metrics() -> ExecutionMetrics:
    """Get the global metrics instance."""
    return _global_metrics


def reset_metrics() -> None:
    """Reset global metrics (useful for testing)."""
    _global_metrics.reset()


__all__ = [
    # Logging
    "LogLevel",
    "StructuredLogger",
    "JSONLogger",
    "FlowLogger",
    # Request log
    "RequestLogEntry",
    "RequestLogSink",
    "LoggingRequestLogSink",
    "InMemoryRequestLogSink",
    # Metrics
    "ExecutionMetrics",
    "get_metrics",
    "reset_metrics",
]
