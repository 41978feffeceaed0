from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from toolhub.adapters.transport import Transport
from toolhub.core.config import Settings, get_settings
from toolhub.core.connections import ConnectionManager
from toolhub.core.status import StatusTracker
from toolhub.core.transports import McpTransport, SseTransport, StdioTransport
from toolhub.registry.database import create_engine
from toolhub.registry.repository import ServerRegistry
from toolhub.servers.invoker import ToolInvoker


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything one process needs to serve tool calls, wired together."""

    engine: AsyncEngine
    connections: ConnectionManager
    registry: ServerRegistry
    status: StatusTracker
    invoker: ToolInvoker

    async def aclose(self) -> None:
        try:
            await self.connections.shutdown()
        finally:
            await self.engine.dispose()


def default_transport(settings: Settings) -> McpTransport:
    common = {
        "connect_timeout_s": settings.connect_timeout_seconds,
        "client_name": settings.client_name,
        "client_version": settings.client_version,
    }
    return McpTransport(
        stdio=StdioTransport(terminate_grace_s=settings.process_terminate_grace_seconds, **common),
        sse=SseTransport(sse_read_timeout_s=settings.sse_read_timeout_seconds, **common),
    )


async def open_runtime(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[Transport] = None,
    database_url: Optional[str] = None,
) -> Runtime:
    settings = settings or get_settings()
    engine = create_engine(database_url or settings.database_url)
    connections = ConnectionManager(transport or default_transport(settings))
    registry = ServerRegistry(engine, connections)
    await registry.create_all()

    status = StatusTracker(registry)
    # A previous process may have died mid-connect
    await status.recover(await registry.list_all())

    invoker = ToolInvoker(registry, connections, status, call_timeout_s=settings.tool_call_timeout_seconds)
    logger.info("runtime.ready", extra={"database_url": engine.url.render_as_string(hide_password=True)})
    return Runtime(engine=engine, connections=connections, registry=registry, status=status, invoker=invoker)


@asynccontextmanager
async def runtime_scope(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[Transport] = None,
    database_url: Optional[str] = None,
) -> AsyncIterator[Runtime]:
    runtime = await open_runtime(settings, transport=transport, database_url=database_url)
    try:
        yield runtime
    finally:
        await runtime.aclose()
