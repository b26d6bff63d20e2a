"""Response node: sets the execution's result and ends traversal."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from apiflow.flow import JSON_CONTENT_TYPE, ExecutionResult, NodeKind

from ..errors import ConfigurationError
from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext

DEFAULT_BODY: dict[str, Any] = {"success": True}


class ResponseExecutor(NodeExecutor):
    """
    Evaluates statusCode, headers and body templates.

    - statusCode defaults to 200 and must resolve to 100..599
    - headers are merged over Content-Type: application/json
    - a missing or null body becomes {"success": true}
    """

    kind = NodeKind.RESPONSE

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        config = node.config

        status = self._status(self.evaluator.evaluate(config.get("statusCode"), ctx), node)

        headers = {"Content-Type": JSON_CONTENT_TYPE}
        evaluated_headers = self.evaluator.evaluate(config.get("headers") or {}, ctx)
        if isinstance(evaluated_headers, dict):
            for name, value in evaluated_headers.items():
                if value is not None:
                    headers[str(name)] = str(value)

        body = self.evaluator.evaluate(config.get("body"), ctx)
        if body is None:
            body = dict(DEFAULT_BODY)

        ctx.response = ExecutionResult(status=status, headers=headers, body=body)
        return NodeOutcome.stop()

    def _status(self, raw: Any, node: FlowNode) -> int:
        if raw is None or raw == "":
            return 200
        try:
            status = int(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid status code on response node {node.id}: {raw!r}", node_id=node.id
            ) from None
        if not 100 <= status <= 599:
            raise ConfigurationError(
                f"Invalid status code on response node {node.id}: {status}", node_id=node.id
            )
        return status
