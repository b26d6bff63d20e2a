"""
Error taxonomy for apiflow flow execution.

Node executors raise these typed errors; tryCatch nodes may intercept
them, and everything else reaches the governor, which is the single
place that turns a failure into the HTTP-shaped result.

Each error carries:
- status: HTTP status the governor answers with
- error_type: stable classification for logs and metrics
- public_message: generic text safe to show to API consumers

`str(error)` holds the internal detail, only exposed outside production.
"""

from __future__ import annotations

from enum import Enum


class ErrorType(str, Enum):
    """Classification of execution failures for logging and metrics."""

    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"
    ROUTE_NOT_FOUND = "route_not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    UNREACHED_RESPONSE = "unreached_response"
    CYCLE_ERROR = "cycle_error"
    EVALUATION_ERROR = "evaluation_error"
    DATA_ACCESS_ERROR = "data_access_error"
    CONNECTION_ERROR = "connection_error"
    TIMEOUT_ERROR = "timeout_error"
    INTERNAL_ERROR = "internal_error"


class FlowError(Exception):
    """Base class for every failure the engine classifies."""

    status: int = 500
    error_type: ErrorType = ErrorType.INTERNAL_ERROR
    public_message: str = "Internal Server Error"

    def __init__(self, message: str, *, status: int | None = None, node_id: str | None = None):
        super().__init__(message)
        if status is not None:
            self.status = status
        self.node_id = node_id


class FlowValidationError(FlowError):
    """The flow document itself is malformed."""

    status = 400
    error_type = ErrorType.VALIDATION_ERROR
    public_message = "Invalid flow definition"


class ConfigurationError(FlowError):
    """A well-formed document configures a node or edge in an unusable way."""

    error_type = ErrorType.CONFIGURATION_ERROR
    public_message = "Invalid flow configuration"


class RouteNotFound(FlowError):
    status = 404
    error_type = ErrorType.ROUTE_NOT_FOUND
    public_message = "Endpoint not found"


class MethodNotAllowed(FlowError):
    status = 405
    error_type = ErrorType.METHOD_NOT_ALLOWED
    public_message = "Method Not Allowed"

    def __init__(self, method: str, allowed: str):
        super().__init__(f"Method Not Allowed: {method} (flow accepts {allowed})")
        self.method = method
        self.allowed = allowed


class UnreachedResponse(FlowError):
    error_type = ErrorType.UNREACHED_RESPONSE
    public_message = "No response node reached"


class TraversalCycle(FlowError):
    """A node was reached a second time within one execution."""

    error_type = ErrorType.CYCLE_ERROR
    public_message = "Cycle detected in flow"

    def __init__(self, node_id: str, label: str):
        super().__init__(f"Cycle detected at node: {label}", node_id=node_id)


class EvaluationError(FlowError):
    """An expression failed to evaluate or ran past its time box."""

    error_type = ErrorType.EVALUATION_ERROR
    public_message = "Expression evaluation failed"

    def __init__(self, expression: str, reason: str, *, node_id: str | None = None):
        super().__init__(f"Expression error: {expression} -> {reason}", node_id=node_id)
        self.expression = expression
        self.reason = reason


class ExpressionTimeout(EvaluationError):
    pass


class DataAccessError(FlowError):
    """A tenant store operation failed; wraps the driver error."""

    error_type = ErrorType.DATA_ACCESS_ERROR
    public_message = "Data access failed"

    def __init__(
        self,
        action: str,
        collection: str,
        reason: str,
        *,
        node_id: str | None = None,
    ):
        super().__init__(f'{action} failed in "{collection}": {reason}', node_id=node_id)
        self.action = action
        self.collection = collection


class TenantConnectionError(FlowError):
    error_type = ErrorType.CONNECTION_ERROR
    public_message = "Failed to connect to the project database"


class DeadlineExceeded(FlowError):
    """The overall flow deadline fired."""

    error_type = ErrorType.TIMEOUT_ERROR
    public_message = "Flow execution timed out"

    def __init__(self, budget_ms: float):
        super().__init__(f"Flow execution exceeded its {budget_ms:.0f} ms deadline")
        self.budget_ms = budget_ms


def classify(exc: BaseException) -> ErrorType:
    """Classification used for logs and metrics of any failure."""
    if isinstance(exc, FlowError):
        return exc.error_type
    return ErrorType.INTERNAL_ERROR


__all__ = [
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
]
