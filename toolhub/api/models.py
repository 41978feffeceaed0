from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from toolhub.core.schemas import AvailableTool, RefreshOutcome, Server, Tool


class HealthResponse(BaseModel):
    status: str
    database_ok: bool
    connections: int
    schema_version: str
    timestamp: str


class ServerPayload(BaseModel):
    """Body of POST /servers. `config` is validated into a transport variant by `Server`."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    config: Dict[str, Any]
    enabled: bool = True


class ServerListResponse(BaseModel):
    servers: List[Server]


class EnabledRequest(BaseModel):
    enabled: bool


class DiscoverResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    server_id: str = Field(serialization_alias="serverId")
    tools: List[Tool]


class RefreshResponse(BaseModel):
    results: List[RefreshOutcome]


class ToolListResponse(BaseModel):
    tools: List[AvailableTool]


class ConnectionInfo(BaseModel):
    server_id: str
    transport: str
    has_client: bool
    has_process: bool
    pid: Optional[int] = None


class ConnectionsResponse(BaseModel):
    connections: List[ConnectionInfo]


class ErrorResponse(BaseModel):
    error: str
    error_type: str
    missing_fields: Optional[List[str]] = None
    invalid_fields: Optional[Dict[str, str]] = None
