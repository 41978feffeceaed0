"""Process-scoped table of live connections, one per server id."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from toolhub.adapters.transport import Connection, Transport

from .errors import ConnectionFailure, describe_exception


logger = logging.getLogger(__name__)


class ConnectionManager:
    """Owns connection lifetime for every server.

    Construct one per process (or per test) and pass it by reference.
    `set`, `delete` and `shutdown` close connections through the given
    transport; callers serialize work on one server with `lock()`.
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self._connections: Dict[str, Connection] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._closed = False

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed

    def lock(self, server_id: str) -> asyncio.Lock:
        lock = self._locks.get(server_id)
        if lock is None:
            lock = self._locks[server_id] = asyncio.Lock()
        return lock

    async def set(self, server_id: str, connection: Connection) -> None:
        if self._closed:
            await self._close_quietly(server_id, connection)
            raise ConnectionFailure("Connection manager is shut down")
        previous = self._connections.get(server_id)
        if previous is not None and previous is not connection:
            await self._close_quietly(server_id, previous)
        self._connections[server_id] = connection
        logger.info("connections.set", extra={"server_id": server_id, "pid": connection.pid})

    def get(self, server_id: str) -> Optional[Connection]:
        return self._connections.get(server_id)

    def has(self, server_id: str) -> bool:
        return server_id in self._connections

    def all(self) -> List[Connection]:
        return list(self._connections.values())

    async def delete(self, server_id: str) -> None:
        """Close and forget the server's connection. Absent ids are a no-op."""
        connection = self._connections.pop(server_id, None)
        if connection is None:
            return
        await self._close_quietly(server_id, connection)
        logger.info("connections.deleted", extra={"server_id": server_id})

    async def _close_quietly(self, server_id: str, connection: Connection) -> None:
        try:
            await self.transport.close(connection)
        except Exception as e:
            logger.warning("connections.close failed", extra={"server_id": server_id, "error": describe_exception(e)})

    async def shutdown(self) -> None:
        """Close every connection and refuse new ones."""
        self._closed = True
        server_ids = list(self._connections)
        if server_ids:
            logger.info("connections.shutdown", extra={"count": len(server_ids)})
        await asyncio.gather(*(self.delete(server_id) for server_id in server_ids), return_exceptions=True)

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "server_id": server_id,
                "transport": connection.transport,
                "has_client": connection.session is not None,
                "has_process": connection.process is not None,
                "pid": connection.pid,
            }
            for server_id, connection in self._connections.items()
        ]
