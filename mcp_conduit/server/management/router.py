"""Management API router.

All routes are mounted under ``/manage/v1/`` by ``server/app.py``.
"""

import logging
from typing import Optional

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, Router

from mcp_conduit.constants import SERVER_VERSION
from mcp_conduit.runtime.service import BridgeService
from mcp_conduit.server.management.schemas import (
    CallToolRequest,
    ErrorResponse,
    HealthResponse,
    ReconnectResponse,
    ToolDetail,
    ToolsResponse,
)

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_service(request: Request) -> BridgeService:
    """Retrieve the BridgeService instance from app state."""
    service: Optional[BridgeService] = getattr(request.app.state, "conduit_service", None)
    if service is None:
        raise RuntimeError("BridgeService not found on app.state")
    return service


def _error_json(error: str, message: str, status_code: int = 500) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(body.model_dump(), status_code=status_code)


# ── GET /manage/v1/health ────────────────────────────────────────────────


async def handle_health(request: Request) -> JSONResponse:
    """Liveness probe, always public."""
    status = _get_service(request).status()
    if status.configured == 0 or status.connected == status.configured:
        health = "healthy"
    elif status.connected > 0:
        health = "degraded"
    else:
        health = "unhealthy"
    resp = HealthResponse(
        status=health,
        version=SERVER_VERSION,
        configured=status.configured,
        connected=status.connected,
    )
    return JSONResponse(resp.model_dump())


# ── GET /manage/v1/status ───────────────────────────────────────────────


async def handle_status(request: Request) -> JSONResponse:
    """Per-provider status plus the merged tool list."""
    service = _get_service(request)
    body = service.status().to_dict()
    body["text"] = service.status_text()
    return JSONResponse(body)


# ── GET /manage/v1/tools ────────────────────────────────────────────────


async def handle_tools(request: Request) -> JSONResponse:
    """Tools the host would see right now."""
    service = _get_service(request)
    tools = [
        ToolDetail(
            name=t.name,
            label=t.label,
            description=t.description,
            provider=t.provider_name,
            original_name=t.original_name,
            blocked=t.blocked,
            parameters=t.parameters,
        )
        for t in service.resolve_tools()
    ]
    return JSONResponse(ToolsResponse(tools=tools).model_dump())


# ── POST /manage/v1/reconnect ───────────────────────────────────────────


async def handle_reconnect_all(request: Request) -> JSONResponse:
    """Tear down and rebuild every provider connection."""
    status = await _get_service(request).force_reconnect()
    return JSONResponse(status.to_dict())


# ── POST /manage/v1/reconnect/{name} ────────────────────────────────────


async def handle_reconnect(request: Request) -> JSONResponse:
    """Reconnect a specific provider by name."""
    service = _get_service(request)
    name = request.path_params.get("name", "")
    if not name:
        return _error_json("bad_request", "Provider name is required.", 400)

    if name not in {cfg.name for cfg in service.effective_configs()}:
        return _error_json("not_found", f"Provider '{name}' not found.", 404)

    reconnected = await service.reconnect_provider(name)
    error = ""
    if not reconnected:
        conn = service.manager.get_connection(name) if service.manager else None
        error = (conn.last_error if conn else None) or "Provider is not running."
    resp = ReconnectResponse(name=name, reconnected=reconnected, error=error)
    return JSONResponse(resp.model_dump(), status_code=200 if reconnected else 500)


# ── POST /manage/v1/tools/call ──────────────────────────────────────────


async def handle_call_tool(request: Request) -> JSONResponse:
    """Invoke a bridged tool: ``{"name": ..., "arguments": {...}}``."""
    service = _get_service(request)
    try:
        payload = await request.json()
    except ValueError:
        return _error_json("bad_request", "Request body must be JSON.", 400)
    try:
        call = CallToolRequest.model_validate(payload)
    except ValidationError as exc:
        return _error_json("bad_request", str(exc), 400)

    logger.info("Management call of tool '%s'.", call.name)
    result = await service.call_tool(call.name, call.arguments, call_id=call.call_id)
    return JSONResponse(result)


# ── Router ───────────────────────────────────────────────────────────────


management_routes = Router(
    routes=[
        Route("/health", endpoint=handle_health, methods=["GET"]),
        Route("/status", endpoint=handle_status, methods=["GET"]),
        Route("/tools", endpoint=handle_tools, methods=["GET"]),
        Route("/tools/call", endpoint=handle_call_tool, methods=["POST"]),
        Route("/reconnect", endpoint=handle_reconnect_all, methods=["POST"]),
        Route("/reconnect/{name}", endpoint=handle_reconnect, methods=["POST"]),
    ]
)
