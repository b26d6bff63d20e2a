"""Value nodes: transform and assign."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apiflow.flow import NodeKind

from ..errors import ConfigurationError, EvaluationError
from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext


class TransformExecutor(NodeExecutor):
    """
    Evaluates a `transformation` expression and binds its value.

    Runs with the (longer) transform time box. Failures are fatal.
    """

    kind = NodeKind.TRANSFORM

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        transformation = node.config.get("transformation", "null")
        try:
            value = self.evaluator.evaluate_scalar(
                transformation,
                ctx,
                timeout_ms=self.settings.transform_timeout_ms,
            )
        except EvaluationError as exc:
            exc.node_id = node.id
            raise
        ctx.bind_result(node.id, value)
        return NodeOutcome.proceed()


class AssignExecutor(NodeExecutor):
    """Binds an evaluated value to a named variable and to the node id."""

    kind = NodeKind.ASSIGN

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        config = node.config
        variable = config.get("variable")
        if not variable or not isinstance(variable, str):
            raise ConfigurationError(
                f"Variable name required for assign node {node.id}", node_id=node.id
            )

        value = self.evaluator.evaluate(config.get("value", ""), ctx)
        ctx.variables[variable] = value
        ctx.bind_result(node.id, value)
        return NodeOutcome.proceed()
