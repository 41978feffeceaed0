"""Persistence for server configuration, status and discovered tools.

`ServerRegistry` is the only code that talks to the tables. Deleting a
server removes its tools in the same transaction and, when a connection
manager is attached, closes the server's live connection first.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy.orm import selectinload

from toolhub.core.connections import ConnectionManager
from toolhub.core.errors import ServerNotFound
from toolhub.core.schemas import AvailableTool, Server, Status, Tool

from . import database
from .models import ServerRecord, ToolRecord


logger = logging.getLogger(__name__)


def tool_id(server_id: str, tool_name: str) -> str:
    return f"{server_id}_{tool_name}"


def _to_tool(record: ToolRecord) -> Tool:
    return Tool(name=record.name, description=record.description, inputSchema=record.input_schema)


def _to_server(record: ServerRecord) -> Server:
    return Server(
        id=record.id,
        name=record.name,
        config=record.config,
        enabled=bool(record.enabled),
        status=record.status,
        tools=[_to_tool(t) for t in record.tools],
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ServerRegistry:
    def __init__(self, engine: AsyncEngine, connections: Optional[ConnectionManager] = None):
        self.engine = engine
        self._sessions: async_sessionmaker = database.create_session_factory(engine)
        self.connections = connections

    async def create_all(self) -> None:
        await database.create_all(self.engine)

    # Servers
    async def save(self, server: Server) -> Server:
        """Insert or replace a server by id. Stored tools are left as they are."""
        config = server.config.model_dump(mode="json")
        async with self._sessions.begin() as session:
            record = await session.get(ServerRecord, server.id)
            if record is None:
                record = ServerRecord(id=server.id)
                session.add(record)
            record.name = server.name
            record.config = config
            record.enabled = server.enabled
            record.status = Status(server.status).value
        logger.info("registry.save", extra={"server_id": server.id, "transport": server.config.transport})
        return await self.require(server.id)

    async def get(self, server_id: str) -> Optional[Server]:
        async with self._sessions() as session:
            query = (
                select(ServerRecord)
                .options(selectinload(ServerRecord.tools))
                .where(ServerRecord.id == server_id)
            )
            record = (await session.execute(query)).scalars().first()
            return _to_server(record) if record is not None else None

    async def require(self, server_id: str) -> Server:
        server = await self.get(server_id)
        if server is None:
            raise ServerNotFound(server_id)
        return server

    async def list_all(self) -> List[Server]:
        return await self._list(enabled_only=False)

    async def list_enabled(self) -> List[Server]:
        return await self._list(enabled_only=True)

    async def _list(self, *, enabled_only: bool) -> List[Server]:
        async with self._sessions() as session:
            query = select(ServerRecord).options(selectinload(ServerRecord.tools))
            if enabled_only:
                query = query.where(ServerRecord.enabled.is_(True))
            query = query.order_by(ServerRecord.created_at.desc(), ServerRecord.id)
            records = (await session.execute(query)).scalars().all()
            return [_to_server(r) for r in records]

    async def update_status(self, server_id: str, status: Status) -> None:
        async with self._sessions.begin() as session:
            await session.execute(
                update(ServerRecord).where(ServerRecord.id == server_id).values(status=Status(status).value)
            )

    async def set_enabled(self, server_id: str, enabled: bool) -> None:
        async with self._sessions.begin() as session:
            await session.execute(
                update(ServerRecord).where(ServerRecord.id == server_id).values(enabled=enabled)
            )

    async def delete(self, server_id: str) -> None:
        """Remove the server, its tools and its live connection. Absent ids are a no-op."""
        if self.connections is not None:
            async with self.connections.lock(server_id):
                await self.connections.delete(server_id)
        async with self._sessions.begin() as session:
            await session.execute(delete(ToolRecord).where(ToolRecord.server_id == server_id))
            result = await session.execute(delete(ServerRecord).where(ServerRecord.id == server_id))
        if result.rowcount:
            logger.info("registry.delete", extra={"server_id": server_id})

    # Tools
    async def save_tools(self, server_id: str, tools: Iterable[Tool]) -> List[Tool]:
        """Replace the server's tool list in one transaction."""
        unique: dict = {}
        for tool in tools:
            if tool.name in unique:
                logger.warning("registry.duplicate tool name ignored", extra={"server_id": server_id, "tool": tool.name})
                continue
            unique[tool.name] = tool

        async with self._sessions.begin() as session:
            if await session.get(ServerRecord, server_id) is None:
                raise ServerNotFound(server_id)
            await session.execute(delete(ToolRecord).where(ToolRecord.server_id == server_id))
            session.add_all(
                [
                    ToolRecord(
                        id=tool_id(server_id, tool.name),
                        server_id=server_id,
                        name=tool.name,
                        description=tool.description,
                        input_schema=tool.input_schema,
                    )
                    for tool in unique.values()
                ]
            )
        logger.info("registry.save_tools", extra={"server_id": server_id, "count": len(unique)})
        return list(unique.values())

    async def tools_by_server(self, server_id: str) -> List[Tool]:
        async with self._sessions() as session:
            query = select(ToolRecord).where(ToolRecord.server_id == server_id).order_by(ToolRecord.name)
            return [_to_tool(r) for r in (await session.execute(query)).scalars().all()]

    async def all_available_tools(self) -> List[AvailableTool]:
        """Tools of servers that are enabled and connected, by server name then tool name."""
        async with self._sessions() as session:
            query = (
                select(ToolRecord, ServerRecord.name)
                .join(ServerRecord, ToolRecord.server_id == ServerRecord.id)
                .where(ServerRecord.enabled.is_(True), ServerRecord.status == Status.CONNECTED.value)
                .order_by(ServerRecord.name, ToolRecord.name)
            )
            rows = (await session.execute(query)).all()
            return [
                AvailableTool(
                    name=tool.name,
                    description=tool.description,
                    inputSchema=tool.input_schema,
                    serverId=tool.server_id,
                    serverName=server_name,
                )
                for tool, server_name in rows
            ]
