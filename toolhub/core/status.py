from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Protocol

from .errors import StatusTransitionError
from .schemas import Server, Status


logger = logging.getLogger(__name__)


_ALLOWED: Dict[Status, FrozenSet[Status]] = {
    Status.DISCONNECTED: frozenset({Status.CONNECTING}),
    Status.CONNECTING: frozenset({Status.CONNECTING, Status.CONNECTED, Status.ERROR}),
    Status.CONNECTED: frozenset({Status.CONNECTING, Status.ERROR}),
    Status.ERROR: frozenset({Status.CONNECTING}),
}


class StatusStore(Protocol):
    async def update_status(self, server_id: str, status: Status) -> None:
        ...


class StatusTracker:
    """Server status state machine.

    Transitions are checked against the allowed edges and written through
    to the store. Moving to ``disconnected`` is always allowed.
    """

    def __init__(self, store: StatusStore):
        self.store = store
        self._current: Dict[str, Status] = {}

    def seed(self, servers: Iterable[Server]) -> None:
        for server in servers:
            self._current[server.id] = Status(server.status)

    def get(self, server_id: str) -> Status:
        return self._current.get(server_id, Status.DISCONNECTED)

    def snapshot(self) -> Dict[str, Status]:
        return dict(self._current)

    def can_transition(self, current: Status, requested: Status) -> bool:
        if requested == Status.DISCONNECTED:
            return True
        return requested in _ALLOWED.get(current, frozenset())

    async def transition(self, server_id: str, requested: Status) -> Status:
        current = self.get(server_id)
        requested = Status(requested)
        if current == requested and requested != Status.CONNECTING:
            return current
        if not self.can_transition(current, requested):
            raise StatusTransitionError(server_id, current.value, requested.value)
        await self.store.update_status(server_id, requested)
        self._current[server_id] = requested
        logger.info("status.transition", extra={"server_id": server_id, "from": current.value, "to": requested.value})
        return requested

    async def recover(self, servers: Iterable[Server]) -> int:
        """Seed from stored servers and reset any left `connecting` by a previous run.

        Returns the number of servers that were reset to ``error``.
        """
        reset = 0
        for server in servers:
            status = Status(server.status)
            self._current[server.id] = status
            if status == Status.CONNECTING:
                await self.transition(server.id, Status.ERROR)
                reset += 1
        if reset:
            logger.warning("status.recovered stale connecting servers", extra={"count": reset})
        return reset

    def forget(self, server_id: str) -> Optional[Status]:
        return self._current.pop(server_id, None)
