"""Route one tool call to its session and normalize the outcome."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, TypeAlias
from uuid import uuid4

from chatmcp.mcp.errors import ErrorCategory, ToolInvocationError, ToolNotFoundError
from chatmcp.mcp.registry import SessionRegistry
from chatmcp.mcp.transports import JSONObject, JSONValue, map_transport_exception

logger = logging.getLogger(__name__)

InvocationPhase: TypeAlias = Literal["invoke_start", "invoke_success", "invoke_failure"]


@dataclass(slots=True)
class InvocationResult:
    """Successful result for a single tool invocation."""

    server_id: str
    tool_name: str
    request_id: str
    result: JSONValue


@dataclass(slots=True)
class InvocationEvent:
    """Lifecycle event for one tool invocation."""

    server_id: str
    tool_name: str
    request_id: str
    phase: InvocationPhase
    timestamp: datetime
    error: str | None = None
    error_category: ErrorCategory | None = None


class InvocationDispatcher:
    """Execute tool calls with at-most-once semantics."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        max_events: int = 500,
    ) -> None:
        self._registry = registry
        self._events: deque[InvocationEvent] = deque(maxlen=max(1, max_events))

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        """Invoke one tool on one connected server.

        Raises `ServerNotConnectedError` before any I/O when the session is
        absent or not connected, and `ToolNotFoundError` when the server's
        last-known catalog does not list the tool. Transport failures surface
        as `ToolInvocationError`; the session's state is left as it was unless
        the connection itself was lost.
        """
        session = self._registry.require_connected(server_id)
        if session.tools and all(tool.name != tool_name for tool in session.tools):
            raise ToolNotFoundError(server_id, tool_name)
        if arguments is not None and not isinstance(arguments, Mapping):
            msg = "Invalid tool arguments: expected an object"
            raise ToolInvocationError(msg, category="invalid_payload")

        payload: JSONObject = dict(arguments or {})
        request_id = str(uuid4())
        self._record(server_id, tool_name, request_id, "invoke_start")
        try:
            result = await session.call_tool(tool_name, payload)
        except Exception as exc:  # noqa: BLE001
            error = map_transport_exception(exc)
            self._record(
                server_id,
                tool_name,
                request_id,
                "invoke_failure",
                error=str(error),
                error_category=error.category,
            )
            logger.warning("Failed to call tool %s on server %s: %s", tool_name, server_id, error)
            if error is exc:
                raise
            raise error from exc

        self._record(server_id, tool_name, request_id, "invoke_success")
        return InvocationResult(
            server_id=server_id,
            tool_name=tool_name,
            request_id=request_id,
            result=result,
        )

    def list_events(
        self,
        *,
        server_id: str | None = None,
        tool_name: str | None = None,
        request_id: str | None = None,
        limit: int | None = None,
    ) -> list[InvocationEvent]:
        """List invocation lifecycle events (bounded retention) with optional filtering."""
        events = [
            event
            for event in self._events
            if (server_id is None or event.server_id == server_id)
            and (tool_name is None or event.tool_name == tool_name)
            and (request_id is None or event.request_id == request_id)
        ]
        if limit is not None:
            if limit <= 0:
                return []
            events = events[-limit:]
        return events

    def _record(
        self,
        server_id: str,
        tool_name: str,
        request_id: str,
        phase: InvocationPhase,
        *,
        error: str | None = None,
        error_category: ErrorCategory | None = None,
    ) -> None:
        self._events.append(
            InvocationEvent(
                server_id=server_id,
                tool_name=tool_name,
                request_id=request_id,
                phase=phase,
                timestamp=datetime.now(UTC),
                error=error,
                error_category=error_category,
            )
        )
