"""
Branching node executors: condition and tryCatch.

Branching nodes never follow "the" outgoing edge; they name a source
handle and the engine follows the edge leaving through it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apiflow.flow import NodeKind

from ..errors import EvaluationError
from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext

logger = logging.getLogger(__name__)


class ConditionExecutor(NodeExecutor):
    """
    Routes through "if" when the condition is truthy, "else" otherwise.

    The condition is a scalar expression. A failing condition is fatal:
    guessing a branch would run the wrong half of the flow.
    """

    kind = NodeKind.CONDITION

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        expression = node.config.get("condition", "true")
        try:
            value = self.evaluator.evaluate_scalar(expression, ctx)
        except EvaluationError as exc:
            exc.node_id = node.id
            raise

        handle = "if" if value else "else"
        ctx.record_branch(node.id, self.name, handle, evaluated=str(expression))
        logger.debug(f"Condition {node.id} took '{handle}'")
        return NodeOutcome.branch(handle)


class TryCatchExecutor(NodeExecutor):
    """Asks the engine to run the "try" subgraph under protection."""

    kind = NodeKind.TRY_CATCH

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        return NodeOutcome.guard()
