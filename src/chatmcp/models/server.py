"""Server and tool descriptor models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TransportKind(StrEnum):
    """Communication mechanism used to reach one MCP server."""

    STDIO = "stdio"
    SSE = "sse"
    WEBSOCKET = "websocket"


class ServerDescriptor(BaseModel):
    """Identity and connection parameters for one tool server."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    name: str
    transport: TransportKind = TransportKind.STDIO
    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    description: str | None = None


class ToolDescriptor(BaseModel):
    """One callable tool exposed by a server."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ResourceDescriptor(BaseModel):
    """One readable resource exposed by a server."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    uri: str
    name: str = ""
    description: str | None = None
    mime_type: str | None = None


def full_tool_name(server_id: str, tool_name: str) -> str:
    """Composite system-wide key for one tool."""
    return f"{server_id}:{tool_name}"
