"""
apiflow Node Executors

One executor per NodeKind. The set is closed: build_executors() returns
an executor for every kind, and unknown editor types resolve to
NodeKind.UNSUPPORTED.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import NodeExecutor, NodeOutcome, OutcomeAction
from .branching import ConditionExecutor, TryCatchExecutor
from .data import (
    COLLECTION_NAME_RE,
    DatabaseExecutor,
    DataNodeExecutor,
    MongoDeleteExecutor,
    MongoFindExecutor,
    MongoInsertExecutor,
    MongoUpdateExecutor,
    validate_collection,
)
from .effects import DelayExecutor, LoggingExecutor
from .entry import HttpMethodExecutor
from .response import ResponseExecutor
from .unsupported import UnsupportedExecutor
from .values import AssignExecutor, TransformExecutor

if TYPE_CHECKING:
    from apiflow.config import EngineSettings
    from apiflow.flow import NodeKind

    from ..expressions import ExpressionEvaluator

EXECUTOR_TYPES: tuple[type[NodeExecutor], ...] = (
    HttpMethodExecutor,
    MongoFindExecutor,
    MongoInsertExecutor,
    MongoUpdateExecutor,
    MongoDeleteExecutor,
    DatabaseExecutor,
    ConditionExecutor,
    TryCatchExecutor,
    ResponseExecutor,
    TransformExecutor,
    AssignExecutor,
    LoggingExecutor,
    DelayExecutor,
    UnsupportedExecutor,
)


def build_executors(
    evaluator: ExpressionEvaluator,
    settings: EngineSettings,
) -> dict[NodeKind, NodeExecutor]:
    """Instantiate the executor registry keyed by node kind."""
    return {cls.kind: cls(evaluator, settings) for cls in EXECUTOR_TYPES}


__all__ = [
    "AssignExecutor",
    "COLLECTION_NAME_RE",
    "ConditionExecutor",
    "DataNodeExecutor",
    "DatabaseExecutor",
    "DelayExecutor",
    "EXECUTOR_TYPES",
    "HttpMethodExecutor",
    "LoggingExecutor",
    "MongoDeleteExecutor",
    "MongoFindExecutor",
    "MongoInsertExecutor",
    "MongoUpdateExecutor",
    "NodeExecutor",
    "NodeOutcome",
    "OutcomeAction",
    "ResponseExecutor",
    "TransformExecutor",
    "TryCatchExecutor",
    "UnsupportedExecutor",
    "build_executors",
    "validate_collection",
]
