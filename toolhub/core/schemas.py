from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from .constants import EMPTY_INPUT_SCHEMA
from .errors import ConfigurationError


class Status(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class StdioConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    transport: Literal["stdio"] = "stdio"
    command: str = Field(min_length=1, description="Executable that speaks the protocol on stdin/stdout")
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)


class SseConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    transport: Literal["sse"] = "sse"
    url: str = Field(min_length=1, description="HTTP event-stream endpoint")
    headers: Dict[str, str] = Field(default_factory=dict)


ServerConfig = Annotated[Union[StdioConfig, SseConfig], Field(discriminator="transport")]

_server_config_adapter: TypeAdapter = TypeAdapter(ServerConfig)


def parse_server_config(data: Any) -> Union[StdioConfig, SseConfig]:
    """Build the transport variant for a config payload.

    Payloads without a ``transport`` key are classified by their fields:
    ``url`` means sse, ``command`` means stdio. Fields belonging to the
    other variant are rejected, never ignored.
    """
    if isinstance(data, (StdioConfig, SseConfig)):
        return data
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Server config must be an object, got {type(data).__name__}")

    payload = dict(data)
    if payload.get("transport") is None:
        payload.pop("transport", None)
        if payload.get("url"):
            payload["transport"] = "sse"
        elif payload.get("command"):
            payload["transport"] = "stdio"
        else:
            raise ConfigurationError("Server config needs 'command' (stdio) or 'url' (sse)")

    try:
        return _server_config_adapter.validate_python(payload)
    except PydanticValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("stdio", "sse"))
            problems.append(f"{loc or 'config'}: {err.get('msg')}")
        raise ConfigurationError(
            f"Invalid {payload.get('transport')} server config: " + "; ".join(problems)
        ) from e


class Tool(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: dict(EMPTY_INPUT_SCHEMA), alias="inputSchema"
    )

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("input_schema", mode="before")
    @classmethod
    def _none_schema(cls, value: Any) -> Any:
        return dict(EMPTY_INPUT_SCHEMA) if not value else value


class AvailableTool(Tool):
    server_id: str = Field(alias="serverId")
    server_name: str = Field(alias="serverName")


class Server(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    config: ServerConfig
    enabled: bool = True
    status: Status = Status.DISCONNECTED
    tools: List[Tool] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("config", mode="before")
    @classmethod
    def _parse_config(cls, value: Any) -> Any:
        return parse_server_config(value)


class ToolCall(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(min_length=1, alias="toolName")
    arguments: Dict[str, Any] = Field(default_factory=dict)
    server_id: str = Field(min_length=1, alias="serverId")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ToolResult(BaseModel):
    """What the orchestrator gets back for every tool call, failed or not."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    tool_name: str = Field(alias="toolName")
    result: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(default=None, alias="errorType")
    timestamp: str = Field(default_factory=_now_iso)


class RefreshOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    server_id: str = Field(alias="serverId")
    status: Status
    tools: List[Tool] = Field(default_factory=list)
    error: Optional[str] = None
