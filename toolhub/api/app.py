"""HTTP surface over the tool hub.

Routes delegate to the registry and the ToolInvoker held by the app's
runtime. The lifespan opens the runtime and shuts every connection down
when the app stops.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from toolhub.adapters.transport import Transport
from toolhub.core.config import Settings, get_settings
from toolhub.core.constants import SCHEMA_VERSION
from toolhub.core.errors import (
    ConfigurationError,
    ConnectionFailure,
    ConnectionTimeout,
    ServerDisabled,
    ServerNotFound,
    StatusTransitionError,
    ToolExecutionError,
    ToolhubError,
    ToolNotFound,
    ValidationError,
)
from toolhub.core.schemas import Server, Status, ToolCall, ToolResult
from toolhub.servers.catalog import servers_summary, tool_definitions
from toolhub.servers.runtime import Runtime, open_runtime

from .models import (
    ConnectionInfo,
    ConnectionsResponse,
    DiscoverResponse,
    EnabledRequest,
    ErrorResponse,
    HealthResponse,
    RefreshResponse,
    ServerListResponse,
    ServerPayload,
    ToolListResponse,
)


logger = logging.getLogger(__name__)

_STATUS_CODES = [
    (ServerNotFound, 404),
    (ToolNotFound, 404),
    (ServerDisabled, 409),
    (StatusTransitionError, 409),
    (ConfigurationError, 400),
    (ValidationError, 400),
    (ConnectionTimeout, 504),
    (ConnectionFailure, 502),
    (ToolExecutionError, 502),
]


def status_code_for(exc: ToolhubError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


router_v1 = APIRouter(prefix="/api/v1")


@router_v1.get("/health", response_model=HealthResponse)
async def health(runtime: Runtime = Depends(get_runtime)):
    try:
        async with runtime.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.warning("api.health database check failed", extra={"error": str(e)})
        database_ok = False
    return HealthResponse(
        status="online" if database_ok else "degraded",
        database_ok=database_ok,
        connections=len(runtime.connections.all()),
        schema_version=SCHEMA_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router_v1.get("/servers", response_model=ServerListResponse)
async def list_servers(runtime: Runtime = Depends(get_runtime)):
    return ServerListResponse(servers=await runtime.registry.list_all())


@router_v1.post("/servers", response_model=Server)
async def save_server(payload: ServerPayload, runtime: Runtime = Depends(get_runtime)):
    existing = await runtime.registry.get(payload.id)
    server = Server(
        id=payload.id,
        name=payload.name,
        config=payload.config,
        enabled=payload.enabled,
        status=existing.status if existing is not None else Status.DISCONNECTED,
    )
    return await runtime.registry.save(server)


@router_v1.post("/servers/refresh", response_model=RefreshResponse)
async def refresh_servers(runtime: Runtime = Depends(get_runtime)):
    return RefreshResponse(results=await runtime.invoker.refresh_all())


@router_v1.delete("/servers/{server_id}")
async def delete_server(server_id: str, runtime: Runtime = Depends(get_runtime)):
    await runtime.invoker.remove_server(server_id)
    return {"success": True, "server_id": server_id}


@router_v1.post("/servers/{server_id}/enabled", response_model=Server)
async def set_server_enabled(server_id: str, body: EnabledRequest, runtime: Runtime = Depends(get_runtime)):
    return await runtime.invoker.set_enabled(server_id, body.enabled)


@router_v1.post("/servers/{server_id}/discover", response_model=DiscoverResponse)
async def discover_server(server_id: str, runtime: Runtime = Depends(get_runtime)):
    tools = await runtime.invoker.discover(server_id)
    return DiscoverResponse(success=True, server_id=server_id, tools=tools)


@router_v1.get("/tools", response_model=ToolListResponse)
async def list_tools(runtime: Runtime = Depends(get_runtime)):
    return ToolListResponse(tools=await runtime.registry.all_available_tools())


@router_v1.get("/tools/definitions")
async def list_tool_definitions(runtime: Runtime = Depends(get_runtime)):
    servers = await runtime.registry.list_enabled()
    return {"summary": servers_summary(servers), "tools": tool_definitions(servers)}


@router_v1.post("/tools/execute", response_model=ToolResult)
async def execute_tool(call: ToolCall, runtime: Runtime = Depends(get_runtime)):
    return await runtime.invoker.execute_call(call)


@router_v1.get("/connections", response_model=ConnectionsResponse)
async def list_connections(runtime: Runtime = Depends(get_runtime)):
    return ConnectionsResponse(connections=[ConnectionInfo(**c) for c in runtime.connections.describe()])


async def _toolhub_error_handler(request: Request, exc: ToolhubError) -> JSONResponse:
    body = ErrorResponse(
        error=str(exc),
        error_type=type(exc).__name__,
        missing_fields=getattr(exc, "missing_fields", None),
        invalid_fields=getattr(exc, "invalid_fields", None),
    )
    code = status_code_for(exc)
    logger.info("api.error", extra={"path": request.url.path, "status_code": code, "error_type": body.error_type})
    return JSONResponse(status_code=code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[Transport] = None,
    database_url: Optional[str] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = await open_runtime(settings, transport=transport, database_url=database_url)
        app.state.runtime = runtime
        try:
            yield
        finally:
            await runtime.aclose()

    app = FastAPI(title="MCP Tool Hub", version="1.0.0", lifespan=lifespan)
    app.add_exception_handler(ToolhubError, _toolhub_error_handler)
    app.include_router(router_v1)
    return app
