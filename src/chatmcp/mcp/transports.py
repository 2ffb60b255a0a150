"""Live transports that own one server connection each."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias, cast
from urllib.parse import quote

import anyio
import httpx

from chatmcp.mcp.errors import ToolInvocationError, TransportClosedError
from chatmcp.models.server import (
    ResourceDescriptor,
    ServerDescriptor,
    ToolDescriptor,
    TransportKind,
)

logger = logging.getLogger(__name__)

JSONValue: TypeAlias = None | bool | int | float | str | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]


class ToolSession(Protocol):
    """Minimal MCP SDK client session surface used by stdio/websocket transports."""

    async def initialize(self) -> Any:
        """Run MCP initialize handshake."""

    async def list_tools(self) -> Any:
        """List tools exposed by the server."""

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call one tool."""

    async def list_resources(self) -> Any:
        """List resources exposed by the server."""


class ToolSessionFactory(Protocol):
    """Factory for descriptor-bound MCP client session contexts."""

    def __call__(self, descriptor: ServerDescriptor) -> AbstractAsyncContextManager[ToolSession]:
        """Return async context manager for one server session."""


class ToolTransport(Protocol):
    """Lifecycle and request operations for one owned connection."""

    async def open(self) -> None:
        """Establish the connection (or validate it for lazily opened transports)."""

    async def list_tools(self) -> list[ToolDescriptor]:
        """Query the live tool list."""

    async def call_tool(self, name: str, arguments: JSONObject) -> JSONValue:
        """Invoke one tool and return its raw result."""

    async def list_resources(self) -> list[ResourceDescriptor]:
        """Query the live resource list."""

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""


class TransportFactory(Protocol):
    """Build the transport for one descriptor."""

    def __call__(self, descriptor: ServerDescriptor) -> ToolTransport:
        """Return an unopened transport."""


class SessionToolTransport:
    """MCP SDK session owned by a dedicated runner task.

    The runner task enters and exits the SDK contexts so that the process or
    socket is always torn down by the task that created it. Requests are sent
    from callers' tasks; the SDK multiplexes them by JSON-RPC id.
    """

    def __init__(
        self,
        descriptor: ServerDescriptor,
        *,
        session_factory: ToolSessionFactory,
        handshake_timeout_seconds: float = 10.0,
        call_timeout_seconds: float = 30.0,
        shutdown_timeout_seconds: float = 5.0,
        lazy: bool = False,
    ) -> None:
        self._descriptor = descriptor
        self._session_factory = session_factory
        self._handshake_timeout_seconds = handshake_timeout_seconds
        self._call_timeout_seconds = call_timeout_seconds
        self._shutdown_timeout_seconds = shutdown_timeout_seconds
        self._lazy = lazy
        self._session: ToolSession | None = None
        self._runner: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._start_lock = asyncio.Lock()
        self._started = False
        self._lost_reason: str | None = None
        self._closed = False

    async def open(self) -> None:
        if self._lazy:
            return
        await self._ensure_session()

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self._request(lambda session: session.list_tools())
        payload = to_json_object(result)
        tools = payload.get("tools") or []
        if not isinstance(tools, list):
            msg = "Invalid tools/list payload: expected list of tools"
            raise ToolInvocationError(msg, category="invalid_payload")
        return [ToolDescriptor.model_validate(tool) for tool in tools]

    async def call_tool(self, name: str, arguments: JSONObject) -> JSONValue:
        result = await self._request(lambda session: session.call_tool(name, dict(arguments)))
        payload = to_json_object(result)
        if payload.get("isError") is True:
            raise ToolInvocationError(_tool_error_text(payload), category="tool_error")
        return payload

    async def list_resources(self) -> list[ResourceDescriptor]:
        result = await self._request(lambda session: session.list_resources())
        resources = to_json_object(result).get("resources") or []
        if not isinstance(resources, list):
            msg = "Invalid resources/list payload: expected list of resources"
            raise ToolInvocationError(msg, category="invalid_payload")
        return [ResourceDescriptor.model_validate(resource) for resource in resources]

    async def close(self) -> None:
        self._closed = True
        runner = self._runner
        self._runner = None
        self._session = None
        if runner is None or runner.done():
            return
        self._stop.set()
        try:
            await asyncio.wait_for(runner, timeout=self._shutdown_timeout_seconds)
        except TimeoutError:
            logger.warning(
                "Session for %s did not shut down within %ss; cancelled",
                self._descriptor.id,
                self._shutdown_timeout_seconds,
            )

    async def _request(self, operation: Callable[[ToolSession], Awaitable[Any]]) -> Any:
        try:
            session = await self._ensure_session()
        except ToolInvocationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TransportClosedError(f"handshake failed: {_describe(exc)}") from exc
        try:
            async with asyncio.timeout(self._call_timeout_seconds):
                return await operation(session)
        except TimeoutError as exc:
            msg = f"request timed out after {self._call_timeout_seconds}s"
            raise ToolInvocationError(msg, category="network_timeout") from exc
        except ToolInvocationError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise map_transport_exception(exc) from exc

    async def _ensure_session(self) -> ToolSession:
        if self._closed:
            raise TransportClosedError("transport is closed")
        if self._lost_reason is not None:
            raise TransportClosedError(f"connection lost: {self._lost_reason}")
        async with self._start_lock:
            if self._session is not None:
                return self._session
            if self._started:
                raise TransportClosedError("connection lost")
            self._started = True
            self._session = await self._start()
            return self._session

    async def _start(self) -> ToolSession:
        ready: asyncio.Future[ToolSession] = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(
            self._run(ready),
            name=f"mcp-session:{self._descriptor.id}",
        )
        try:
            async with asyncio.timeout(self._handshake_timeout_seconds):
                return await ready
        except BaseException:
            runner = self._runner
            self._runner = None
            if runner is not None and not runner.done():
                runner.cancel()
                await asyncio.gather(runner, return_exceptions=True)
            raise

    async def _run(self, ready: asyncio.Future[ToolSession]) -> None:
        try:
            async with self._session_factory(self._descriptor) as session:
                await session.initialize()
                if ready.done():
                    return
                ready.set_result(session)
                await self._stop.wait()
        except Exception as exc:  # noqa: BLE001
            if not ready.done():
                ready.set_exception(exc)
                return
            if not self._closed:
                self._lost_reason = _describe(exc)
            logger.warning("Session for %s ended with error: %s", self._descriptor.id, exc)
        finally:
            if not self._closed and self._lost_reason is None and ready.done():
                self._lost_reason = "session ended"
            self._session = None


class HTTPToolTransport:
    """Per-call HTTP transport for SSE servers."""

    def __init__(
        self,
        descriptor: ServerDescriptor,
        *,
        call_timeout_seconds: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._call_timeout_seconds = call_timeout_seconds
        self._http_transport = http_transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self._call_timeout_seconds,
            headers=self._descriptor.headers,
            transport=self._http_transport,
        )

    async def list_tools(self) -> list[ToolDescriptor]:
        response = await self._send("GET", f"{self.base_url}/tools")
        payload = _response_json(response)
        tools = payload.get("tools") if isinstance(payload, dict) else None
        if not isinstance(tools, list):
            msg = "Invalid tool listing payload: expected {'tools': [...]}"
            raise ToolInvocationError(msg, category="invalid_payload")
        return [ToolDescriptor.model_validate(tool) for tool in tools]

    async def call_tool(self, name: str, arguments: JSONObject) -> JSONValue:
        response = await self._send(
            "POST",
            f"{self.base_url}/tools/{quote(name, safe='')}",
            json=arguments,
        )
        return _response_json(response)

    async def list_resources(self) -> list[ResourceDescriptor]:
        response = await self._send("GET", f"{self.base_url}/resources")
        payload = _response_json(response)
        resources = payload.get("resources") if isinstance(payload, dict) else None
        if resources is None:
            return []
        if not isinstance(resources, list):
            msg = "Invalid resource listing payload: expected {'resources': [...]}"
            raise ToolInvocationError(msg, category="invalid_payload")
        return [ResourceDescriptor.model_validate(resource) for resource in resources]

    async def close(self) -> None:
        client = self._client
        self._client = None
        if client is not None:
            await client.aclose()

    @property
    def base_url(self) -> str:
        return sse_base_url(self._descriptor.url or "")

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = self._client
        if client is None:
            raise TransportClosedError("transport is closed")
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise map_transport_exception(exc) from exc
        return response


@dataclass(slots=True)
class DefaultTransportFactory:
    """Pick the live transport for a descriptor's transport kind."""

    session_factory: ToolSessionFactory | None = None
    handshake_timeout_seconds: float = 10.0
    call_timeout_seconds: float = 30.0
    http_transport: httpx.AsyncBaseTransport | None = None

    def __call__(self, descriptor: ServerDescriptor) -> ToolTransport:
        if descriptor.transport is TransportKind.SSE:
            return HTTPToolTransport(
                descriptor,
                call_timeout_seconds=self.call_timeout_seconds,
                http_transport=self.http_transport,
            )
        return SessionToolTransport(
            descriptor,
            session_factory=self.session_factory or default_session_factory,
            handshake_timeout_seconds=self.handshake_timeout_seconds,
            call_timeout_seconds=self.call_timeout_seconds,
            lazy=descriptor.transport is TransportKind.WEBSOCKET,
        )


def default_session_factory(
    descriptor: ServerDescriptor,
) -> AbstractAsyncContextManager[ToolSession]:
    if descriptor.transport is TransportKind.STDIO:
        return _stdio_session(descriptor)
    if descriptor.transport is TransportKind.WEBSOCKET:
        return _websocket_session(descriptor)
    msg = f"No MCP SDK session for transport: {descriptor.transport}"
    raise ValueError(msg)


@asynccontextmanager
async def _stdio_session(descriptor: ServerDescriptor) -> AsyncIterator[ToolSession]:
    from mcp import ClientSession, StdioServerParameters
    from mcp.client.stdio import stdio_client

    params = StdioServerParameters(
        command=descriptor.command or "",
        args=list(descriptor.args),
        env={**os.environ, **descriptor.env},
    )
    async with stdio_client(params) as (read, write):
        async with ClientSession(read, write) as session:
            yield cast(ToolSession, session)


@asynccontextmanager
async def _websocket_session(descriptor: ServerDescriptor) -> AsyncIterator[ToolSession]:
    from mcp import ClientSession
    from mcp.client.websocket import websocket_client

    if descriptor.headers:
        logger.warning("Headers are not sent on websocket handshakes (server %s)", descriptor.id)
    async with websocket_client(descriptor.url or "") as (read, write):
        async with ClientSession(read, write) as session:
            yield cast(ToolSession, session)


def sse_base_url(url: str) -> str:
    """Strip a trailing `/sse` or `/events` segment from an SSE endpoint."""
    trimmed = url.rstrip("/")
    for suffix in ("/sse", "/events"):
        if trimmed.endswith(suffix):
            return trimmed[: -len(suffix)]
    return trimmed


def to_json_object(value: Any) -> JSONObject:
    if hasattr(value, "model_dump"):
        payload = value.model_dump(mode="json", exclude_none=True)
    else:
        payload = value
    if not isinstance(payload, dict):
        msg = "Invalid MCP SDK response payload"
        raise ToolInvocationError(msg, category="invalid_payload")
    if not all(isinstance(key, str) for key in payload):
        msg = "Invalid MCP SDK response keys"
        raise ToolInvocationError(msg, category="invalid_payload")
    return cast(JSONObject, payload)


def map_transport_exception(exc: BaseException) -> ToolInvocationError:
    """Map any transport-level exception to the invocation error family."""
    if isinstance(exc, ToolInvocationError):
        return exc
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return ToolInvocationError(_describe(exc), category="network_timeout")
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        detail = _response_text(exc.response)
        return ToolInvocationError(
            f"http status {status_code}: {detail}" if detail else f"http status {status_code}",
            category="http_status",
            status_code=status_code,
        )
    if isinstance(exc, httpx.HTTPError):
        return ToolInvocationError(_describe(exc), category="transport_error")
    if _is_connection_lost(exc):
        return TransportClosedError(_describe(exc))
    if _is_mcp_rpc_error(exc):
        return ToolInvocationError(f"rpc error: {_describe(exc)}", category="rpc_error")
    if isinstance(exc, ValueError | TypeError):
        return ToolInvocationError(_describe(exc), category="invalid_payload")
    return ToolInvocationError(_describe(exc), category="transport_error")


def _is_connection_lost(exc: BaseException) -> bool:
    if isinstance(exc, ConnectionError | EOFError):
        return True
    if isinstance(exc, anyio.ClosedResourceError | anyio.BrokenResourceError | anyio.EndOfStream):
        return True
    try:
        from mcp.shared.exceptions import McpError
        from mcp.types import CONNECTION_CLOSED
    except Exception:  # noqa: BLE001
        return False
    return isinstance(exc, McpError) and exc.error.code == CONNECTION_CLOSED


def _is_mcp_rpc_error(exc: BaseException) -> bool:
    try:
        from mcp.shared.exceptions import McpError

        return isinstance(exc, McpError)
    except Exception:  # noqa: BLE001
        return False


def _response_json(response: httpx.Response) -> JSONValue:
    if not response.content:
        return None
    try:
        return cast(JSONValue, response.json())
    except ValueError as exc:
        msg = "Invalid JSON response payload"
        raise ToolInvocationError(msg, category="invalid_payload") from exc


def _response_text(response: httpx.Response, limit: int = 200) -> str:
    try:
        text = response.text.strip()
    except httpx.ResponseNotRead:
        return ""
    return text if len(text) <= limit else f"{text[:limit]}..."


def _tool_error_text(payload: JSONObject) -> str:
    content = payload.get("content")
    if isinstance(content, list):
        texts = [
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        ]
        if texts:
            return "; ".join(cast(list[str], texts))
    return "tool reported an error"


def _describe(exc: BaseException) -> str:
    return str(exc) or f"{type(exc).__name__}: connection closed or timed out"
