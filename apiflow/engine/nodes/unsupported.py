"""Fallback for node types the engine does not know."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apiflow.flow import NodeKind

from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext

logger = logging.getLogger(__name__)


class UnsupportedExecutor(NodeExecutor):
    """Records a warning and lets traversal continue."""

    kind = NodeKind.UNSUPPORTED

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        node_type = node.node_type or "<missing>"
        ctx.record_error(f"Unsupported node type: {node_type}")
        logger.warning(f"Skipping node {node.id} with unsupported type '{node_type}'")
        return NodeOutcome.proceed()
