"""
API Gateway for apiflow.

Serves every published flow under one catch-all route:

    /api/{username}/{project_slug}/{path}

For each request the gateway:
1. Resolves the user, then the active project (404 when either is missing)
2. Rejects projects without a flow (400)
3. Runs the flow against the tenant database via TenantFlowRunner
4. Replies with the flow's status, headers and body plus X-Response-Time
5. Records a RequestLogEntry for the external logging collaborator
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from apiflow.engine import RequestLogEntry, RequestLogSink
from apiflow.flow import JSON_CONTENT_TYPE, ExecutionResult, RequestContext
from apiflow.runtime import TenantFlowRunner

from .dependencies import get_project_repository, get_request_log_sink, get_runner
from .projects import ProjectRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["gateway"])

GATEWAY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Set by the transport, never copied from a flow result
_HOP_HEADERS = frozenset({"content-length", "transfer-encoding", "connection"})


async def _read_body(request: Request) -> Any:
    """Decode the request body; JSON when possible, text otherwise, {} when empty."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _render(result: ExecutionResult, duration_ms: float) -> Response:
    headers = {
        name: value for name, value in result.headers.items() if name.lower() not in _HOP_HEADERS
    }
    headers["X-Response-Time"] = f"{duration_ms:.0f}ms"
    content_type = next(
        (value for name, value in headers.items() if name.lower() == "content-type"),
        JSON_CONTENT_TYPE,
    )

    if result.status in (204, 304):
        return Response(status_code=result.status, headers=headers)
    if isinstance(result.body, (str, bytes)) and "json" not in content_type:
        return Response(content=result.body, status_code=result.status, headers=headers)
    return JSONResponse(
        content=jsonable_encoder(result.body),
        status_code=result.status,
        headers=headers,
    )


@router.api_route("/{username}/{project_slug}", methods=GATEWAY_METHODS)
@router.api_route("/{username}/{project_slug}/{path:path}", methods=GATEWAY_METHODS)
async def handle_gateway_request(
    username: str,
    project_slug: str,
    request: Request,
    path: str = "",
    projects: ProjectRepository = Depends(get_project_repository),
    runner: TenantFlowRunner = Depends(get_runner),
    request_log: RequestLogSink = Depends(get_request_log_sink),
) -> Response:
    """Resolve the project and execute its flow."""
    started = time.perf_counter()
    full_path = "/" + "/".join(segment for segment in path.split("/") if segment)

    try:
        user_id = await projects.find_user_id(username)
        if user_id is None:
            return JSONResponse(
                status_code=404,
                content={"error": "Not found", "message": "User not found"},
            )

        project = await projects.find_active_project(user_id, project_slug)
        if project is None:
            return JSONResponse(
                status_code=404,
                content={"error": "Not found", "message": "Project not found or not active"},
            )
    except Exception as exc:
        logger.error(
            f"Gateway lookup failed for {username}/{project_slug}{full_path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": "Failed to process request"},
        )

    if not project.has_flow:
        return JSONResponse(
            status_code=400,
            content={"error": "No flow defined", "message": "This project has no active API flow"},
        )

    flow_request = RequestContext(
        method=request.method,
        path=full_path,
        headers=dict(request.headers),
        body=await _read_body(request),
        query=dict(request.query_params),
    )

    result = await runner.run(
        project.flow,
        flow_request,
        project.connection_uri.get_secret_value(),
        tenant_id=project.user_id,
        project_id=project.id,
    )
    duration_ms = (time.perf_counter() - started) * 1000

    await request_log.record(
        RequestLogEntry(
            tenant_id=project.user_id,
            project_id=project.id,
            flow_id=str(project.flow.get("id") or project.flow.get("_id") or ""),
            method=flow_request.method,
            path=full_path,
            status=result.status,
            duration_ms=duration_ms,
            error=result.body.get("error") if not result.ok and isinstance(result.body, dict) else None,
        )
    )

    return _render(result, duration_ms)
