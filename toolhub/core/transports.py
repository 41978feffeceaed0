"""Protocol client transports for stdio and SSE tool servers.

Each connection is owned by a runner task that enters the transport and
session contexts, reports readiness and then waits for a close request.
Opening and closing the contexts in one task lets `close()` be called
from anywhere, including shutdown.

All business code should go through `ConnectionManager` and
`ToolInvoker` instead of driving these classes directly.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import anyio
import anyio.lowlevel
from anyio.streams.text import TextReceiveStream
from mcp import ClientSession
from mcp import types as mcp_types
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment
from mcp.shared.exceptions import McpError
from mcp.shared.message import SessionMessage

from toolhub.adapters.transport import Connection

from .config import get_settings
from .constants import CONNECTION_CLOSED_CODE
from .errors import (
    ConfigurationError,
    ConnectionFailure,
    ConnectionTimeout,
    ToolExecutionError,
    describe_exception,
)
from .schemas import SseConfig, StdioConfig, Tool


logger = logging.getLogger(__name__)

Streams = Tuple[Any, Any]


class SessionTransport:
    """Shared connect/list/call/close logic over a protocol client session.

    Subclasses provide `_open_streams`, an async context manager yielding
    the read and write streams the session runs on.
    """

    kind = ""

    def __init__(
        self,
        *,
        connect_timeout_s: Optional[float] = None,
        client_name: Optional[str] = None,
        client_version: Optional[str] = None,
    ):
        cfg = get_settings()
        self.connect_timeout_s = connect_timeout_s if connect_timeout_s is not None else cfg.connect_timeout_seconds
        self.client_info = mcp_types.Implementation(
            name=client_name or cfg.client_name,
            version=client_version or cfg.client_version,
        )

    def _open_streams(self, connection: Connection, config: Any):
        raise NotImplementedError

    async def connect(self, server_id: str, config: Union[StdioConfig, SseConfig]) -> Connection:
        if config.transport != self.kind:
            raise ConfigurationError(f"{type(self).__name__} cannot open a {config.transport} server")

        connection = Connection(server_id=server_id, transport=self.kind)
        ready: asyncio.Future = asyncio.get_running_loop().create_future()
        connection.runner = asyncio.create_task(
            self._run(connection, config, ready), name=f"mcp-connection-{server_id}"
        )
        logger.info("connection.open", extra={"server_id": server_id, "transport": self.kind})

        try:
            await asyncio.wait_for(ready, timeout=self.connect_timeout_s)
        except asyncio.TimeoutError:
            await self._abandon(connection)
            logger.warning(
                "connection.timeout", extra={"server_id": server_id, "timeout_s": self.connect_timeout_s}
            )
            raise ConnectionTimeout(server_id, self.connect_timeout_s) from None
        except asyncio.CancelledError:
            await self._abandon(connection)
            raise
        except ConnectionFailure:
            await self._abandon(connection)
            raise
        return connection

    async def _run(self, connection: Connection, config: Any, ready: asyncio.Future) -> None:
        try:
            async with self._open_streams(connection, config) as (read_stream, write_stream):
                async with ClientSession(read_stream, write_stream, client_info=self.client_info) as session:
                    await session.initialize()
                    connection.session = session
                    if not ready.done():
                        ready.set_result(connection)
                    await connection.close_requested.wait()
        except ConnectionFailure as e:
            if not ready.done():
                ready.set_exception(e)
        except Exception as e:
            if not ready.done():
                ready.set_exception(
                    ConnectionFailure(f"Failed to connect to server {connection.server_id}: {describe_exception(e)}")
                )
            else:
                logger.warning(
                    "connection.lost",
                    extra={"server_id": connection.server_id, "error": describe_exception(e)},
                )
        finally:
            connection.session = None
            if not ready.done():
                ready.set_exception(ConnectionFailure(f"Connection to server {connection.server_id} closed during setup"))

    async def _abandon(self, connection: Connection) -> None:
        task = connection.runner
        if task is None:
            return
        connection.close_requested.set()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def close(self, connection: Connection) -> None:
        task = connection.runner
        if task is None or task.done():
            return
        connection.close_requested.set()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.connect_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("connection.close timed out; cancelling", extra={"server_id": connection.server_id})
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info("connection.closed", extra={"server_id": connection.server_id})

    def _session(self, connection: Connection) -> ClientSession:
        if connection.session is None or not connection.is_open:
            raise ConnectionFailure(f"Connection to server {connection.server_id} is closed")
        return connection.session

    async def list_tools(self, connection: Connection) -> List[Tool]:
        session = self._session(connection)
        try:
            result = await session.list_tools()
        except McpError as e:
            raise ConnectionFailure(f"tools/list failed on server {connection.server_id}: {e}") from e
        except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError) as e:
            raise ConnectionFailure(
                f"Connection to server {connection.server_id} broke during tools/list: {describe_exception(e)}"
            ) from e

        return [
            Tool(name=t.name, description=t.description, inputSchema=t.inputSchema)
            for t in result.tools
        ]

    async def call_tool(self, connection: Connection, name: str, arguments: Dict[str, Any]) -> Any:
        session = self._session(connection)
        logger.info("mcp.call_tool", extra={"server_id": connection.server_id, "tool": name, "has_args": bool(arguments)})
        try:
            result = await session.call_tool(name, arguments)
        except McpError as e:
            if e.error.code == CONNECTION_CLOSED_CODE:
                raise ConnectionFailure(
                    f"Connection to server {connection.server_id} closed during '{name}'"
                ) from e
            # The server answered with a JSON-RPC error: the session itself is fine
            raise ToolExecutionError(name, e.error.message) from e
        except (anyio.ClosedResourceError, anyio.BrokenResourceError, OSError) as e:
            raise ConnectionFailure(
                f"Connection to server {connection.server_id} broke during '{name}': {describe_exception(e)}"
            ) from e

        content = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in result.content]
        if result.isError:
            raise ToolExecutionError(name, _error_text(content))
        return content


def _error_text(content: List[Dict[str, Any]]) -> str:
    for item in content:
        text = item.get("text") or item.get("error")
        if text:
            return str(text)
    return "the tool reported an error without details"


class StdioTransport(SessionTransport):
    """Spawns the server as a child process and speaks newline-delimited JSON-RPC over its pipes."""

    kind = "stdio"

    def __init__(self, *, terminate_grace_s: Optional[float] = None, **kwargs: Any):
        super().__init__(**kwargs)
        cfg = get_settings()
        self.terminate_grace_s = (
            terminate_grace_s if terminate_grace_s is not None else cfg.process_terminate_grace_seconds
        )

    @asynccontextmanager
    async def _open_streams(self, connection: Connection, config: StdioConfig) -> AsyncIterator[Streams]:
        env = {**get_default_environment(), **config.env}
        try:
            # stderr is inherited so server diagnostics reach the host log
            process = await anyio.open_process([config.command, *config.args], env=env, stderr=None)
        except OSError as e:
            raise ConnectionFailure(f"Failed to start '{config.command}' for server {connection.server_id}: {e}") from e

        connection.process = process
        logger.info("stdio.process started", extra={"server_id": connection.server_id, "pid": process.pid})

        read_send, read_recv = anyio.create_memory_object_stream(0)
        write_send, write_recv = anyio.create_memory_object_stream(0)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(_pump_stdout, process, read_send)
                tg.start_soon(_pump_stdin, process, write_recv)
                try:
                    yield read_recv, write_send
                finally:
                    tg.cancel_scope.cancel()
        finally:
            read_recv.close()
            write_send.close()
            await _terminate(process, self.terminate_grace_s, connection.server_id)


async def _pump_stdout(process: Any, read_send: Any) -> None:
    async with read_send:
        buffer = ""
        try:
            async for chunk in TextReceiveStream(process.stdout, encoding="utf-8"):
                lines = (buffer + chunk).split("\n")
                buffer = lines.pop()
                for line in lines:
                    if not line.strip():
                        continue
                    try:
                        message = mcp_types.JSONRPCMessage.model_validate_json(line)
                    except ValueError as e:
                        await read_send.send(e)
                        continue
                    await read_send.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            await anyio.lowlevel.checkpoint()


async def _pump_stdin(process: Any, write_recv: Any) -> None:
    async with write_recv:
        try:
            async for session_message in write_recv:
                payload = session_message.message.model_dump_json(by_alias=True, exclude_none=True)
                await process.stdin.send((payload + "\n").encode("utf-8"))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            await anyio.lowlevel.checkpoint()


async def _terminate(process: Any, grace_s: float, server_id: str) -> None:
    """Terminate the child, killing it if it outlives the grace period. Failures are logged, never raised."""
    with anyio.CancelScope(shield=True):
        try:
            if process.returncode is None:
                process.terminate()
                with anyio.move_on_after(grace_s):
                    await process.wait()
            if process.returncode is None:
                logger.warning("stdio.process kill after grace period", extra={"server_id": server_id, "pid": process.pid})
                process.kill()
                await process.wait()
            await process.aclose()
        except (OSError, anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            logger.warning(
                "stdio.process termination failed",
                extra={"server_id": server_id, "pid": process.pid, "error": describe_exception(e)},
            )
            return
    logger.info("stdio.process exited", extra={"server_id": server_id, "returncode": process.returncode})


class SseTransport(SessionTransport):
    """Attaches to an HTTP event-stream endpoint with custom headers."""

    kind = "sse"

    def __init__(self, *, sse_read_timeout_s: Optional[float] = None, **kwargs: Any):
        super().__init__(**kwargs)
        cfg = get_settings()
        self.sse_read_timeout_s = sse_read_timeout_s if sse_read_timeout_s is not None else cfg.sse_read_timeout_seconds

    @asynccontextmanager
    async def _open_streams(self, connection: Connection, config: SseConfig) -> AsyncIterator[Streams]:
        async with sse_client(
            config.url,
            headers=dict(config.headers) or None,
            timeout=self.connect_timeout_s,
            sse_read_timeout=self.sse_read_timeout_s,
        ) as (read_stream, write_stream):
            yield read_stream, write_stream


class McpTransport:
    """Routes each operation to the stdio or SSE transport by config variant."""

    def __init__(self, stdio: Optional[StdioTransport] = None, sse: Optional[SseTransport] = None):
        self._by_kind: Dict[str, SessionTransport] = {
            "stdio": stdio or StdioTransport(),
            "sse": sse or SseTransport(),
        }

    def _for(self, kind: str) -> SessionTransport:
        try:
            return self._by_kind[kind]
        except KeyError:
            raise ConfigurationError(f"Unsupported transport '{kind}'") from None

    async def connect(self, server_id: str, config: Union[StdioConfig, SseConfig]) -> Connection:
        return await self._for(config.transport).connect(server_id, config)

    async def list_tools(self, connection: Connection) -> List[Tool]:
        return await self._for(connection.transport).list_tools(connection)

    async def call_tool(self, connection: Connection, name: str, arguments: Dict[str, Any]) -> Any:
        return await self._for(connection.transport).call_tool(connection, name, arguments)

    async def close(self, connection: Connection) -> None:
        await self._for(connection.transport).close(connection)
