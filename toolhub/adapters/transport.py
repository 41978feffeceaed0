from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Union

from toolhub.core.schemas import SseConfig, StdioConfig, Tool


@dataclass
class Connection:
    """A live protocol client for one server.

    `session` is the protocol client, `process` the child process handle
    for stdio servers. Both are owned by the runner task that opened them.
    """

    server_id: str
    transport: str
    session: Any = None
    process: Any = None
    close_requested: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    runner: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.process, "pid", None)

    @property
    def is_open(self) -> bool:
        return self.runner is not None and not self.runner.done() and not self.close_requested.is_set()


class Transport(Protocol):
    """Abstract interface for talking to a tool server.

    Implementations may spawn a subprocess speaking over stdio or attach
    to an HTTP event-stream endpoint.
    """

    async def connect(self, server_id: str, config: Union[StdioConfig, SseConfig]) -> Connection:
        ...

    async def list_tools(self, connection: Connection) -> List[Tool]:
        ...

    async def call_tool(self, connection: Connection, name: str, arguments: Dict[str, Any]) -> Any:
        ...

    async def close(self, connection: Connection) -> None:
        ...
