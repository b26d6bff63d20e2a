"""
Tenant Flow Runner.

Connects one inbound request to the engine:

    1. Check the entry node, method and route (no connection needed)
    2. Open the tenant connection (scoped to this call)
    3. Execute the flow against it
    4. Release the connection on every exit path
    5. Emit one structured "Flow request" event

The runner is the outermost boundary of a flow invocation: like the
engine it never raises, so the gateway always has a result to send.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from apiflow.engine.errors import TenantConnectionError, classify
from apiflow.engine.observability import JSONLogger, LogLevel

if TYPE_CHECKING:
    from apiflow.engine import FlowEngine
    from apiflow.flow import ExecutionResult, FlowDocument, RequestContext
    from apiflow.tenant import TenantConnectionManager

logger = logging.getLogger(__name__)


def _request_field(request: RequestContext | dict[str, Any], name: str) -> str:
    value = request.get(name) if isinstance(request, dict) else getattr(request, name, None)
    return str(value or "")


class TenantFlowRunner:
    """
    Runs flows for tenants, one scoped connection per call.

    Args:
        engine: Shared flow engine
        connections: Opens per-invocation tenant connections
        event_logger: Structured logger for request events
    """

    def __init__(
        self,
        engine: FlowEngine,
        connections: TenantConnectionManager,
        *,
        event_logger: JSONLogger | None = None,
    ):
        self.engine = engine
        self.connections = connections
        self._events = event_logger or JSONLogger(name="apiflow.runtime")

    async def run(
        self,
        flow: FlowDocument | dict[str, Any],
        request: RequestContext | dict[str, Any],
        connection_uri: str,
        *,
        tenant_id: str,
        project_id: str,
    ) -> ExecutionResult:
        """
        Execute `flow` for `request` against the tenant's database.

        Args:
            flow: Flow document of the project endpoint
            request: Inbound request
            connection_uri: Decrypted tenant connection string (never logged)
            tenant_id: Owner identifier, for logging only
            project_id: Project identifier, for logging only

        Returns:
            ExecutionResult; connection failures become a 500 result
        """
        started = time.perf_counter()
        error_type: str | None = None

        try:
            rejection = self.engine.precheck(flow, request)
            if rejection is not None:
                result = rejection
            else:
                async with self.connections.connect(connection_uri) as store:
                    result = await self.engine.execute(flow, request, store)
        except TenantConnectionError as exc:
            logger.warning(f"Tenant connection failed for project {project_id}: {exc}")
            error_type = classify(exc).value
            result = self.engine.governor.failure(exc)
        except Exception as exc:
            logger.error(f"Unexpected error running flow for project {project_id}: {exc}", exc_info=True)
            error_type = classify(exc).value
            result = self.engine.governor.failure(exc)

        duration_ms = (time.perf_counter() - started) * 1000
        level = LogLevel.ERROR if result.status >= 500 else LogLevel.INFO
        self._events._log(
            level,
            "Flow request",
            {
                "tenant_id": tenant_id,
                "project_id": project_id,
                "method": _request_field(request, "method").upper(),
                "path": _request_field(request, "path"),
                "status": result.status,
                "duration_ms": round(duration_ms, 2),
                "error_type": error_type,
            },
        )
        return result
