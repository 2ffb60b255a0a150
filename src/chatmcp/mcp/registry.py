"""Session registry: the single source of truth for server usability."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeVar
from urllib.parse import urlsplit

from chatmcp.mcp.errors import (
    DuplicateServerError,
    InvalidDescriptorError,
    ServerConnectionError,
    ServerNotConnectedError,
    ToolInvocationError,
    TransportClosedError,
)
from chatmcp.mcp.probe import HTTP_SCHEMES, WEBSOCKET_SCHEMES, ProbeResult, TransportProbe
from chatmcp.mcp.transports import (
    DefaultTransportFactory,
    JSONObject,
    JSONValue,
    ToolTransport,
    TransportFactory,
)
from chatmcp.models.server import (
    ResourceDescriptor,
    ServerDescriptor,
    ToolDescriptor,
    TransportKind,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionStatus(StrEnum):
    """Lifecycle state of one registered session."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(slots=True)
class Session:
    """Runtime state bound to one server descriptor.

    The transport handle is private; callers go through `list_tools`,
    `call_tool` and `close`.
    """

    descriptor: ServerDescriptor
    _transport: ToolTransport = field(repr=False)
    status: SessionStatus = SessionStatus.CONNECTING
    enabled: bool = True
    closing: bool = False
    tools: tuple[ToolDescriptor, ...] = ()
    probe: ProbeResult | None = None
    last_error: str | None = None
    connected_at: datetime | None = None

    @property
    def server_id(self) -> str:
        return self.descriptor.id

    @property
    def connected(self) -> bool:
        """Logical usability: connected, enabled and not being torn down."""
        return self.status is SessionStatus.CONNECTED and self.enabled and not self.closing

    async def list_tools(self) -> list[ToolDescriptor]:
        tools = await self._guard(self._transport.list_tools())
        self.tools = tuple(tools)
        return tools

    async def call_tool(self, name: str, arguments: JSONObject) -> JSONValue:
        return await self._guard(self._transport.call_tool(name, arguments))

    async def list_resources(self) -> list[ResourceDescriptor]:
        return await self._guard(self._transport.list_resources())

    async def open(self) -> None:
        await self._transport.open()

    async def close(self) -> None:
        await self._transport.close()

    async def _guard(self, request: Awaitable[T]) -> T:
        try:
            return await request
        except TransportClosedError as exc:
            self.status = SessionStatus.FAILED
            self.last_error = str(exc)
            raise
        except ToolInvocationError as exc:
            self.last_error = str(exc)
            raise


class SessionRegistry:
    """In-memory map from server id to Session; one session per id."""

    def __init__(
        self,
        *,
        probe: TransportProbe | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._probe = probe or TransportProbe()
        self._transport_factory = transport_factory or DefaultTransportFactory()

    async def add(self, descriptor: ServerDescriptor) -> Session:
        """Probe, establish and store a session; nothing is stored on failure."""
        validate_descriptor(descriptor)
        if descriptor.id in self._sessions:
            raise DuplicateServerError(descriptor.id)

        session = Session(
            descriptor=descriptor,
            _transport=self._transport_factory(descriptor),
        )
        # Reserve the id while connecting so a concurrent add is rejected.
        self._sessions[descriptor.id] = session

        session.probe = await self._probe.probe(descriptor)
        if not session.probe.reachable and session.probe.reachable is not None:
            logger.warning(
                "Probe for %s (%s) failed: %s; attempting connection anyway",
                descriptor.id,
                descriptor.transport,
                session.probe.message,
            )

        try:
            await session.open()
        except BaseException as exc:
            self._sessions.pop(descriptor.id, None)
            session.status = SessionStatus.FAILED
            await self._release(session)
            if not isinstance(exc, Exception):
                raise
            reason = str(exc) or type(exc).__name__
            logger.error("Failed to start MCP server %s: %s", descriptor.name, reason)
            raise ServerConnectionError(descriptor.id, reason) from exc

        if self._sessions.get(descriptor.id) is not session:
            await self._release(session)
            raise ServerConnectionError(descriptor.id, "removed while connecting")

        session.status = SessionStatus.CONNECTED
        session.connected_at = datetime.now(UTC)
        logger.info("Connected to MCP server %s (%s)", descriptor.name, descriptor.transport)
        return session

    async def remove(self, server_id: str) -> None:
        """Tear down one session. Absent ids are a no-op."""
        session = self._sessions.get(server_id)
        if session is None:
            return
        session.closing = True
        try:
            await self._release(session)
        finally:
            if self._sessions.get(server_id) is session:
                del self._sessions[server_id]
        logger.info("Removed MCP server %s", server_id)

    def get(self, server_id: str) -> Session | None:
        return self._sessions.get(server_id)

    def all(self) -> list[Session]:
        return list(self._sessions.values())

    def require_connected(self, server_id: str) -> Session:
        session = self._sessions.get(server_id)
        if session is None or not session.connected:
            raise ServerNotConnectedError(server_id)
        return session

    async def disconnect_all(self) -> None:
        """Remove every session concurrently and wait for all of them."""
        await asyncio.gather(*(self.remove(server_id) for server_id in list(self._sessions)))

    @staticmethod
    async def _release(session: Session) -> None:
        try:
            await session.close()
        except Exception as exc:  # noqa: BLE001
            logger.error("Error removing server %s: %s", session.server_id, exc)


def validate_descriptor(descriptor: ServerDescriptor) -> None:
    """Reject descriptors missing their transport-specific fields."""
    if not descriptor.id.strip() or not descriptor.name.strip():
        raise InvalidDescriptorError("Server ID and name are required")
    if descriptor.transport is TransportKind.STDIO:
        if not descriptor.command or not descriptor.command.strip():
            raise InvalidDescriptorError("Command is required for stdio transport")
        return
    if not descriptor.url:
        raise InvalidDescriptorError("URL is required for SSE/WebSocket transport")
    scheme = urlsplit(descriptor.url).scheme.lower()
    allowed = WEBSOCKET_SCHEMES if descriptor.transport is TransportKind.WEBSOCKET else HTTP_SCHEMES
    if scheme not in allowed:
        expected = " or ".join(f"{item}://" for item in sorted(allowed))
        msg = f"URL for {descriptor.transport} transport must start with {expected}"
        raise InvalidDescriptorError(msg)
