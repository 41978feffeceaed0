"""Tool execution and discovery across registered servers.

Connections are opened on demand: every call and every discovery opens a
fresh connection, registers it with the ConnectionManager while it runs,
and closes it on every exit path. Work on one server is serialized by
the manager's per-server lock; different servers run in parallel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from toolhub.core.config import get_settings
from toolhub.core.connections import ConnectionManager
from toolhub.core.errors import (
    ConnectionFailure,
    ServerDisabled,
    ServerNotFound,
    ToolExecutionError,
    ToolhubError,
    ToolNotFound,
    describe_exception,
)
from toolhub.core.schema_translator import ArgumentValidator, SchemaTranslator
from toolhub.core.schemas import RefreshOutcome, Server, Status, Tool, ToolCall, ToolResult
from toolhub.core.status import StatusTracker
from toolhub.registry.repository import ServerRegistry


logger = logging.getLogger(__name__)


class ToolInvoker:
    def __init__(
        self,
        registry: ServerRegistry,
        connections: ConnectionManager,
        status: Optional[StatusTracker] = None,
        translator: Optional[SchemaTranslator] = None,
        *,
        call_timeout_s: Optional[float] = None,
    ):
        self.registry = registry
        self.connections = connections
        self.transport = connections.transport
        self.status = status or StatusTracker(registry)
        self.translator = translator or SchemaTranslator()
        self.call_timeout_s = call_timeout_s if call_timeout_s is not None else get_settings().tool_call_timeout_seconds
        self._validators: Dict[Tuple[str, str], Tuple[str, ArgumentValidator]] = {}

    # Execution
    async def execute(
        self,
        tool_name: str,
        arguments: Optional[Mapping[str, Any]],
        server_id: str,
        *,
        timeout_s: Optional[float] = None,
    ) -> ToolResult:
        """Run a tool and report the outcome as a `ToolResult`; never raises taxonomy errors."""
        try:
            content = await self.call(tool_name, arguments, server_id, timeout_s=timeout_s)
        except ToolhubError as e:
            logger.warning(
                "invoker.execute failed",
                extra={"server_id": server_id, "tool": tool_name, "error_type": type(e).__name__, "error": str(e)},
            )
            return ToolResult(success=False, toolName=tool_name, error=str(e), errorType=type(e).__name__)
        return ToolResult(success=True, toolName=tool_name, result=content)

    async def execute_call(self, call: ToolCall, *, timeout_s: Optional[float] = None) -> ToolResult:
        return await self.execute(call.tool_name, call.arguments, call.server_id, timeout_s=timeout_s)

    async def call(
        self,
        tool_name: str,
        arguments: Optional[Mapping[str, Any]],
        server_id: str,
        *,
        timeout_s: Optional[float] = None,
    ) -> Any:
        """Run a tool and return its content, raising on any failure."""
        server = await self._resolve(server_id)
        tool = next((t for t in server.tools if t.name == tool_name), None)
        if tool is None:
            raise ToolNotFound(server_id, tool_name)
        args = self.validator_for(server_id, tool).validate(arguments if arguments is not None else {})
        timeout = timeout_s if timeout_s is not None else self.call_timeout_s

        async with self.connections.lock(server_id):
            # Re-read under the lock: the server may have been deleted or disabled while waiting
            server = await self._resolve(server_id)
            self.status.seed([server])
            await self.status.transition(server_id, Status.CONNECTING)
            try:
                connection = await self.transport.connect(server_id, server.config)
                try:
                    await self.connections.set(server_id, connection)
                    try:
                        content = await asyncio.wait_for(
                            self.transport.call_tool(connection, tool_name, args), timeout=timeout
                        )
                    except asyncio.TimeoutError:
                        raise ConnectionFailure(
                            f"Tool '{tool_name}' on server {server_id} timed out after {timeout:g} seconds"
                        ) from None
                finally:
                    await self.connections.delete(server_id)
            except ToolExecutionError:
                # The remote tool failed; the server itself answered fine
                await self.status.transition(server_id, Status.CONNECTED)
                raise
            except ToolhubError:
                await self.status.transition(server_id, Status.ERROR)
                raise
            except asyncio.CancelledError:
                await self.status.transition(server_id, Status.DISCONNECTED)
                raise
            except Exception as e:
                await self.status.transition(server_id, Status.ERROR)
                raise ConnectionFailure(
                    f"Tool '{tool_name}' on server {server_id} failed: {describe_exception(e)}"
                ) from e
            await self.status.transition(server_id, Status.CONNECTED)

        logger.info("invoker.call ok", extra={"server_id": server_id, "tool": tool_name})
        return content

    async def _resolve(self, server_id: str) -> Server:
        server = await self.registry.get(server_id)
        if server is None:
            raise ServerNotFound(server_id)
        if not server.enabled:
            raise ServerDisabled(server_id)
        return server

    def validator_for(self, server_id: str, tool: Tool) -> ArgumentValidator:
        fingerprint = json.dumps(tool.input_schema, sort_keys=True, default=str)
        cached = self._validators.get((server_id, tool.name))
        if cached is not None and cached[0] == fingerprint:
            return cached[1]
        validator = self.translator.translate(tool.input_schema, tool_name=tool.name)
        self._validators[(server_id, tool.name)] = (fingerprint, validator)
        return validator

    def _forget_validators(self, server_id: str) -> None:
        for key in [k for k in self._validators if k[0] == server_id]:
            del self._validators[key]

    # Discovery
    async def discover(self, server_id: str, *, timeout_s: Optional[float] = None) -> List[Tool]:
        """Connect, list the server's tools and replace the stored list with them."""
        timeout = timeout_s if timeout_s is not None else self.call_timeout_s

        async with self.connections.lock(server_id):
            server = await self.registry.get(server_id)
            if server is None:
                raise ServerNotFound(server_id)
            self.status.seed([server])
            await self.status.transition(server_id, Status.CONNECTING)
            try:
                connection = await self.transport.connect(server_id, server.config)
                try:
                    await self.connections.set(server_id, connection)
                    try:
                        tools = await asyncio.wait_for(self.transport.list_tools(connection), timeout=timeout)
                    except asyncio.TimeoutError:
                        raise ConnectionFailure(
                            f"Listing tools on server {server_id} timed out after {timeout:g} seconds"
                        ) from None
                finally:
                    await self.connections.delete(server_id)
                saved = await self.registry.save_tools(server_id, tools)
            except ToolhubError:
                await self.status.transition(server_id, Status.ERROR)
                raise
            except asyncio.CancelledError:
                await self.status.transition(server_id, Status.DISCONNECTED)
                raise
            except Exception as e:
                await self.status.transition(server_id, Status.ERROR)
                raise ConnectionFailure(
                    f"Discovery on server {server_id} failed: {describe_exception(e)}"
                ) from e

            self._forget_validators(server_id)
            await self.status.transition(server_id, Status.CONNECTED)

        logger.info("invoker.discover ok", extra={"server_id": server_id, "tools": len(saved)})
        return saved

    async def refresh(self, server_id: str) -> RefreshOutcome:
        try:
            tools = await self.discover(server_id)
        except ToolhubError as e:
            return RefreshOutcome(serverId=server_id, status=self.status.get(server_id), error=str(e))
        return RefreshOutcome(serverId=server_id, status=Status.CONNECTED, tools=tools)

    async def refresh_all(self) -> List[RefreshOutcome]:
        """Discover every enabled server concurrently. One failure never stops the others."""
        servers = await self.registry.list_enabled()
        results = await asyncio.gather(*(self.refresh(s.id) for s in servers), return_exceptions=True)

        outcomes: List[RefreshOutcome] = []
        for server, result in zip(servers, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(
                    "invoker.refresh unexpected failure",
                    extra={"server_id": server.id, "error": describe_exception(result)},
                )
                result = RefreshOutcome(
                    serverId=server.id, status=self.status.get(server.id), error=describe_exception(result)
                )
            outcomes.append(result)
        logger.info(
            "invoker.refresh_all done",
            extra={"servers": len(outcomes), "failed": sum(1 for o in outcomes if o.error)},
        )
        return outcomes

    # Server lifecycle
    async def set_enabled(self, server_id: str, enabled: bool) -> Server:
        server = await self.registry.get(server_id)
        if server is None:
            raise ServerNotFound(server_id)
        async with self.connections.lock(server_id):
            await self.registry.set_enabled(server_id, enabled)
            if not enabled:
                await self.connections.delete(server_id)
                self.status.seed([server])
                await self.status.transition(server_id, Status.DISCONNECTED)
        return await self.registry.require(server_id)

    async def disable_server(self, server_id: str) -> Server:
        return await self.set_enabled(server_id, False)

    async def remove_server(self, server_id: str) -> None:
        await self.registry.delete(server_id)
        self.status.forget(server_id)
        self._forget_validators(server_id)
