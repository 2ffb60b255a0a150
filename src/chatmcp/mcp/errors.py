"""Error taxonomy for the orchestration layer."""

from __future__ import annotations

from typing import Literal, TypeAlias

ErrorCategory: TypeAlias = Literal[
    "network_timeout",
    "http_status",
    "invalid_payload",
    "rpc_error",
    "tool_error",
    "connection_closed",
    "transport_error",
    "unsupported",
]


class OrchestrationError(RuntimeError):
    """Base class for every error raised by the orchestration layer."""


class DuplicateServerError(OrchestrationError):
    """Raised when a server id is already registered."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server with ID '{server_id}' already exists")
        self.server_id = server_id


class InvalidDescriptorError(OrchestrationError):
    """Raised when a descriptor lacks its transport-specific fields."""


class ServerConnectionError(OrchestrationError):
    """Raised when a session cannot be established."""

    def __init__(self, server_id: str, reason: str) -> None:
        super().__init__(f"Failed to connect to MCP server '{server_id}': {reason}")
        self.server_id = server_id
        self.reason = reason


class ServerNotFoundError(OrchestrationError):
    """Raised when no session is registered under an id."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server '{server_id}' is not registered")
        self.server_id = server_id


class ServerNotConnectedError(OrchestrationError):
    """Raised when an operation targets a session that is not connected."""

    def __init__(self, server_id: str) -> None:
        super().__init__(f"Server '{server_id}' not found or not connected")
        self.server_id = server_id


class ToolNotFoundError(OrchestrationError):
    """Raised when a tool is absent from the server's last-known catalog."""

    def __init__(self, server_id: str, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' is not exposed by server '{server_id}'")
        self.server_id = server_id
        self.tool_name = tool_name


class ToolInvocationError(OrchestrationError):
    """Transport-level failure while talking to a live server."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = "transport_error",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class TransportClosedError(ToolInvocationError):
    """The underlying process or socket is gone."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category="connection_closed")
