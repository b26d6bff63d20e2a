"""
Node executor abstraction for apiflow.

Each node kind has one executor. Executors are stateless: everything an
execution owns lives on the ExecutionContext, so one executor instance
serves every concurrent request.

Design:
- execute(node, ctx) -> NodeOutcome
- Executors never walk the graph; they tell the engine what to do next
- Errors are raised as typed FlowErrors and handled by the engine
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from apiflow.config import EngineSettings
    from apiflow.flow import FlowNode, NodeKind

    from ..context import ExecutionContext
    from ..expressions import ExpressionEvaluator

logger = logging.getLogger(__name__)


class OutcomeAction(str, Enum):
    CONTINUE = "continue"  # follow the single outgoing edge, if any
    BRANCH = "branch"  # follow the edge with the given source handle
    GUARD = "guard"  # run the "try" subgraph, fall back to "catch"
    STOP = "stop"  # terminal node


@dataclass(frozen=True)
class NodeOutcome:
    """What the engine should do after a node has run."""

    action: OutcomeAction
    handle: str | None = None

    @classmethod
    def proceed(cls) -> "NodeOutcome":
        return cls(OutcomeAction.CONTINUE)

    @classmethod
    def branch(cls, handle: str) -> "NodeOutcome":
        return cls(OutcomeAction.BRANCH, handle)

    @classmethod
    def guard(cls) -> "NodeOutcome":
        return cls(OutcomeAction.GUARD)

    @classmethod
    def stop(cls) -> "NodeOutcome":
        return cls(OutcomeAction.STOP)


class NodeExecutor(ABC):
    """
    Base class for all node executors.

    Subclasses set `kind` and implement execute(). They receive the
    shared expression evaluator and engine settings at construction.
    """

    kind: ClassVar[NodeKind]

    def __init__(self, evaluator: ExpressionEvaluator, settings: EngineSettings):
        self.evaluator = evaluator
        self.settings = settings

    @property
    def name(self) -> str:
        """Name used in logging and metrics."""
        return self.kind.value

    @abstractmethod
    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        """
        Run one node against the execution context.

        Args:
            node: The node being executed
            ctx: Request-scoped execution state

        Returns:
            NodeOutcome telling the engine where to go next

        Raises:
            FlowError: Typed failure (tryCatch may intercept it)
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind='{self.name}')"
