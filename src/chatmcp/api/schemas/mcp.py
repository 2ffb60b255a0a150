"""MCP API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatmcp.mcp.bridge import BridgeOperation
from chatmcp.mcp.errors import ErrorCategory
from chatmcp.mcp.registry import SessionStatus
from chatmcp.models.server import ServerDescriptor, TransportKind


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class RegisterServerRequest(CamelModel):
    """Create/register MCP server payload."""

    id: str
    name: str
    transport: TransportKind = TransportKind.STDIO
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    description: str | None = None

    def to_descriptor(self) -> ServerDescriptor:
        return ServerDescriptor.model_validate(self.model_dump())


class ProbeResponse(CamelModel):
    """Last reachability probe for one server."""

    reachable: bool | None
    advisory: bool
    message: str
    checked_at: datetime


class ServerResponse(CamelModel):
    """MCP server status payload."""

    id: str
    name: str
    transport: TransportKind
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    url: str | None = None
    description: str | None = None
    is_connected: bool
    status: SessionStatus
    enabled: bool
    last_error: str | None = None
    connected_at: datetime | None = None
    tool_count: int = 0
    probe: ProbeResponse | None = None


class ServersResponse(CamelModel):
    """Collection of MCP servers."""

    servers: list[ServerResponse]


class ServerMutationResponse(CamelModel):
    """Acknowledgement for add/remove/toggle."""

    success: bool = True
    server: ServerResponse | None = None


class ToolResponse(CamelModel):
    """MCP tool descriptor response."""

    name: str
    description: str
    input_schema: dict[str, Any] = Field(default_factory=dict)


class CatalogToolResponse(ToolResponse):
    """Tool annotated with its owning server."""

    server_id: str
    full_name: str


class ToolsResponse(CamelModel):
    """Tools of one server."""

    tools: list[ToolResponse]


class ServerToolsResponse(CamelModel):
    """Tools grouped under their server."""

    server_id: str
    tools: list[ToolResponse]


class ServersToolsResponse(CamelModel):
    """Tools of every connected server, grouped by server."""

    servers: list[ServerToolsResponse]


class AllToolsResponse(CamelModel):
    """Flattened catalog plus the grouped view."""

    tools: list[CatalogToolResponse]
    servers: list[ServerToolsResponse]


class ResourceResponse(CamelModel):
    """MCP resource descriptor response."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None


class ResourcesResponse(CamelModel):
    """Resources of one server."""

    resources: list[ResourceResponse]


class CallToolRequest(CamelModel):
    """Tool invocation payload."""

    server_id: str
    tool_name: str
    arguments: dict[str, Any] | None = None


class CallToolResponse(CamelModel):
    """Tool invocation result."""

    result: Any
    request_id: str


class InvocationEventResponse(CamelModel):
    """Invocation lifecycle event response."""

    server_id: str
    tool_name: str
    request_id: str
    phase: Literal["invoke_start", "invoke_success", "invoke_failure"]
    timestamp: datetime
    error: str | None = None
    error_category: ErrorCategory | None = None


class InvocationEventsResponse(CamelModel):
    """Collection of invocation lifecycle events."""

    items: list[InvocationEventResponse]


class BridgeStatusResponse(CamelModel):
    """Cached bridge connectivity."""

    bridge_url: str
    connected: bool
    last_checked_at: datetime | None = None


class FileOperationRequest(CamelModel):
    """Bridge file operation payload."""

    operation: BridgeOperation
    path: str
