"""Error taxonomy for server registration, connections and tool calls.

Configuration and validation errors are caller-local: raising them never
changes stored status or the connection table. Connection failures are
reported after the server status has been moved to ``error``.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional


class ToolhubError(RuntimeError):
    pass


class ConfigurationError(ToolhubError):
    """A server config is missing transport fields or mixes variants."""


class ServerNotFound(ToolhubError):
    def __init__(self, server_id: str):
        super().__init__(f"Server with ID {server_id} not found")
        self.server_id = server_id


class ServerDisabled(ToolhubError):
    def __init__(self, server_id: str):
        super().__init__(f"Server {server_id} is disabled")
        self.server_id = server_id


class ToolNotFound(ToolhubError):
    def __init__(self, server_id: str, tool_name: str):
        super().__init__(f"Tool '{tool_name}' is not available on server {server_id}")
        self.server_id = server_id
        self.tool_name = tool_name


class ValidationError(ToolhubError):
    """Tool arguments do not satisfy the tool's declared input schema."""

    def __init__(
        self,
        missing_fields: Iterable[str] = (),
        invalid_fields: Optional[Dict[str, str]] = None,
    ):
        self.missing_fields = list(missing_fields)
        self.invalid_fields = dict(invalid_fields or {})
        parts = []
        if self.missing_fields:
            parts.append("missing required fields: " + ", ".join(self.missing_fields))
        if self.invalid_fields:
            parts.append(
                "invalid fields: "
                + ", ".join(f"{name} ({reason})" for name, reason in self.invalid_fields.items())
            )
        super().__init__("; ".join(parts) or "invalid tool arguments")


class ConnectionFailure(ToolhubError):
    """Transport-level error while connecting or during a call."""


class ConnectionTimeout(ConnectionFailure):
    def __init__(self, server_id: str, timeout_s: float):
        super().__init__(f"Connection to server {server_id} timed out after {timeout_s:g} seconds")
        self.server_id = server_id
        self.timeout_s = timeout_s


class ToolExecutionError(ToolhubError):
    """The remote tool ran and reported failure."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' error: {message}")
        self.tool_name = tool_name
        self.remote_message = message


class StatusTransitionError(ToolhubError):
    def __init__(self, server_id: str, current: str, requested: str):
        super().__init__(f"Server {server_id}: cannot move from '{current}' to '{requested}'")
        self.server_id = server_id
        self.current = current
        self.requested = requested


def describe_exception(exc: BaseException) -> str:
    """Flatten exception groups raised by task groups into a readable message."""
    nested = getattr(exc, "exceptions", None)
    if nested:
        return "; ".join(describe_exception(e) for e in nested)
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
