"""
apiflow Execution Engine

Interprets flow documents at request time: expression sandbox, node
executors, governor (deadline, cycles, error translation) and the
engine that ties them together.

Usage:
    from apiflow.engine import FlowEngine

    engine = FlowEngine()
    result = await engine.execute(flow, request, store)
"""

from .context import BranchDecision, ExecutionContext
from .engine import FlowEngine
from .errors import (
    ConfigurationError,
    DataAccessError,
    DeadlineExceeded,
    ErrorType,
    EvaluationError,
    ExpressionTimeout,
    FlowError,
    FlowValidationError,
    MethodNotAllowed,
    RouteNotFound,
    TenantConnectionError,
    TraversalCycle,
    UnreachedResponse,
    classify,
)
from .expressions import SAFE_FUNCTIONS, ExpressionEvaluator
from .governor import Deadline, ExecutionGovernor
from .observability import (
    ExecutionMetrics,
    FlowLogger,
    InMemoryRequestLogSink,
    JSONLogger,
    LoggingRequestLogSink,
    RequestLogEntry,
    RequestLogSink,
    get_metrics,
    reset_metrics,
)

__all__ = [
    # Engine
    "FlowEngine",
    "ExecutionContext",
    "BranchDecision",
    "ExpressionEvaluator",
    "SAFE_FUNCTIONS",
    "ExecutionGovernor",
    "Deadline",
    # Errors
    "ConfigurationError",
    "DataAccessError",
    "DeadlineExceeded",
    "ErrorType",
    "EvaluationError",
    "ExpressionTimeout",
    "FlowError",
    "FlowValidationError",
    "MethodNotAllowed",
    "RouteNotFound",
    "TenantConnectionError",
    "TraversalCycle",
    "UnreachedResponse",
    "classify",
    # Observability
    "ExecutionMetrics",
    "FlowLogger",
    "InMemoryRequestLogSink",
    "JSONLogger",
    "LoggingRequestLogSink",
    "RequestLogEntry",
    "RequestLogSink",
    "get_metrics",
    "reset_metrics",
]
