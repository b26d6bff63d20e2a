"""Entry node: marks the start of a flow."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

from apiflow.flow import NodeKind

from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext


class HttpMethodExecutor(NodeExecutor):
    """
    Seeds `variables.request` with its own copy of the request.

    Method and route matching already happened in the governor, so this
    node only publishes the request to expressions.
    """

    kind = NodeKind.HTTP_METHOD

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        ctx.variables["request"] = copy.deepcopy(ctx.request)
        return NodeOutcome.proceed()
