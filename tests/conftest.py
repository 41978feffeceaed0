from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import pytest

from toolhub.adapters.transport import Connection, Transport
from toolhub.core.connections import ConnectionManager
from toolhub.core.errors import ConnectionFailure, ConnectionTimeout
from toolhub.core.schemas import Server, Tool
from toolhub.registry.database import create_engine
from toolhub.registry.repository import ServerRegistry
from toolhub.servers.invoker import ToolInvoker


@dataclass
class FakeServer:
    """Scripted behaviour for one server id."""

    tools: List[Tool] = field(default_factory=list)
    # tool name -> value, Exception to raise, or (async) callable taking the arguments
    results: Dict[str, Any] = field(default_factory=dict)
    hang_connect: bool = False
    connect_error: Optional[Exception] = None
    list_error: Optional[Exception] = None
    close_error: Optional[Exception] = None


class FakeTransport(Transport):
    def __init__(self, connect_timeout_s: float = 0.2):
        self.connect_timeout_s = connect_timeout_s
        self.servers: Dict[str, FakeServer] = {}
        self.opened: List[Connection] = []
        self.closed: List[Connection] = []
        self.calls: List[tuple] = []
        self.live: Set[int] = set()
        self.active_calls: Dict[str, int] = {}
        self.max_active_calls: Dict[str, int] = {}

    def add(self, server_id: str, **behaviour: Any) -> FakeServer:
        server = FakeServer(**behaviour)
        self.servers[server_id] = server
        return server

    def _behaviour(self, server_id: str) -> FakeServer:
        return self.servers.setdefault(server_id, FakeServer())

    async def connect(self, server_id, config) -> Connection:
        behaviour = self._behaviour(server_id)
        if behaviour.connect_error is not None:
            raise behaviour.connect_error
        if behaviour.hang_connect:
            try:
                await asyncio.wait_for(asyncio.Event().wait(), timeout=self.connect_timeout_s)
            except asyncio.TimeoutError:
                raise ConnectionTimeout(server_id, self.connect_timeout_s) from None
        connection = Connection(server_id=server_id, transport=config.transport, session=object())
        self.opened.append(connection)
        self.live.add(id(connection))
        return connection

    async def list_tools(self, connection) -> List[Tool]:
        behaviour = self._behaviour(connection.server_id)
        if behaviour.list_error is not None:
            raise behaviour.list_error
        return list(behaviour.tools)

    async def call_tool(self, connection, name, arguments) -> Any:
        if id(connection) not in self.live:
            raise ConnectionFailure(f"Connection to server {connection.server_id} is closed")
        server_id = connection.server_id
        self.calls.append((server_id, name, dict(arguments)))
        self.active_calls[server_id] = self.active_calls.get(server_id, 0) + 1
        self.max_active_calls[server_id] = max(self.max_active_calls.get(server_id, 0), self.active_calls[server_id])
        try:
            outcome = self._behaviour(server_id).results.get(name)
            if isinstance(outcome, Exception):
                raise outcome
            if callable(outcome):
                outcome = outcome(arguments)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
                return outcome
            if outcome is None:
                return [{"type": "text", "text": json.dumps(arguments, sort_keys=True)}]
            return outcome
        finally:
            self.active_calls[server_id] -= 1

    async def close(self, connection) -> None:
        self.live.discard(id(connection))
        self.closed.append(connection)
        behaviour = self._behaviour(connection.server_id)
        if behaviour.close_error is not None:
            raise behaviour.close_error


def make_tool(name: str, properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None, description: str = "") -> Tool:
    schema = {"type": "object", "properties": properties or {}, "required": required or []}
    return Tool(name=name, description=description, inputSchema=schema)


def stdio_server(server_id: str, name: Optional[str] = None, **fields: Any) -> Server:
    return Server(id=server_id, name=name or server_id, config={"transport": "stdio", "command": "fake-server"}, **fields)


def sse_server(server_id: str, name: Optional[str] = None, **fields: Any) -> Server:
    return Server(id=server_id, name=name or server_id, config={"transport": "sse", "url": f"http://localhost/{server_id}/sse"}, **fields)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'mcp-tools.db'}"


@pytest.fixture
async def engine(database_url):
    engine = create_engine(database_url)
    yield engine
    await engine.dispose()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
async def connections(transport):
    manager = ConnectionManager(transport)
    yield manager
    await manager.shutdown()


@pytest.fixture
async def registry(engine, connections):
    registry = ServerRegistry(engine, connections)
    await registry.create_all()
    return registry


@pytest.fixture
def invoker(registry, connections):
    return ToolInvoker(registry, connections, call_timeout_s=1.0)
