"""
Effect nodes: logging and delay.

Logging writes to the `apiflow.flow` logger so operators can route flow
output separately from engine diagnostics. Delays sleep through the
execution deadline and are bounded by EngineSettings.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from apiflow.flow import NodeKind

from ..errors import ConfigurationError
from .base import NodeExecutor, NodeOutcome

if TYPE_CHECKING:
    from apiflow.flow import FlowNode

    from ..context import ExecutionContext

flow_logger = logging.getLogger("apiflow.flow")

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingExecutor(NodeExecutor):
    """Emits an evaluated message at the configured level."""

    kind = NodeKind.LOGGING

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        config = node.config
        level_name = str(config.get("level") or "info").lower()
        level = LOG_LEVELS.get(level_name, logging.INFO)

        message = self.evaluator.evaluate(config.get("message", ""), ctx)
        flow_logger.log(
            level,
            f"[Flow Log] {message}",
            extra={
                "flow_id": ctx.flow.id,
                "node_id": node.id,
                "execution_id": str(ctx.execution_id),
            },
        )
        ctx.bind_result(node.id, {"logged": True})
        return NodeOutcome.proceed()


class DelayExecutor(NodeExecutor):
    """
    Pauses traversal for `delay` milliseconds.

    Out-of-range or non-numeric delays are configuration errors and never
    sleep.
    """

    kind = NodeKind.DELAY

    async def execute(self, node: FlowNode, ctx: ExecutionContext) -> NodeOutcome:
        raw = self.evaluator.evaluate(node.config.get("delay", self.settings.default_delay_ms), ctx)
        delay_ms = self._milliseconds(raw, node)

        low, high = self.settings.delay_min_ms, self.settings.delay_max_ms
        if not low <= delay_ms <= high:
            raise ConfigurationError(
                f"Delay must be between {low} and {high}ms (got {raw})", node_id=node.id
            )

        await ctx.deadline.sleep(delay_ms / 1000)
        ctx.bind_result(node.id, {"delayed": delay_ms})
        return NodeOutcome.proceed()

    def _milliseconds(self, raw: Any, node: FlowNode) -> float:
        if isinstance(raw, bool):
            raw = None
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Delay must be a number of milliseconds (got {raw!r})", node_id=node.id
            ) from None
        return int(value) if value.is_integer() else value
