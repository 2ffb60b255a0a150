from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from chatmcp.mcp.probe import ProbeResult
from chatmcp.mcp.transports import JSONObject, JSONValue
from chatmcp.models.server import (
    ResourceDescriptor,
    ServerDescriptor,
    ToolDescriptor,
    TransportKind,
)

README_RESOURCE = {
    "uri": "echo://readme",
    "name": "readme",
    "description": "How to use the echo server",
    "mimeType": "text/plain",
}

ECHO_TOOL = {
    "name": "echo",
    "description": "Echo the given text",
    "inputSchema": {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    },
}


def stdio_descriptor(server_id: str = "echo", **overrides: Any) -> ServerDescriptor:
    values: dict[str, Any] = {
        "id": server_id,
        "name": f"{server_id} server",
        "transport": TransportKind.STDIO,
        "command": "echo-server",
    }
    values.update(overrides)
    return ServerDescriptor.model_validate(values)


class ModelPayload:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    def model_dump(self, *, mode: str = "python", exclude_none: bool = False) -> dict[str, Any]:
        del mode, exclude_none
        return self._payload


class FakeToolSession:
    def __init__(self, tools: list[dict[str, Any]] | None = None) -> None:
        self.tools = [ECHO_TOOL] if tools is None else tools
        self.initialized = False
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def initialize(self) -> ModelPayload:
        self.initialized = True
        return ModelPayload({"protocolVersion": "2025-06-18", "serverInfo": {"name": "fake"}})

    async def list_tools(self) -> ModelPayload:
        if self.fail_with is not None:
            raise self.fail_with
        return ModelPayload({"tools": self.tools})

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ModelPayload:
        self.calls.append((name, arguments or {}))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if name == "fail":
            return ModelPayload(
                {"content": [{"type": "text", "text": "boom"}], "isError": True},
            )
        text = str((arguments or {}).get("text", ""))
        return ModelPayload({"content": [{"type": "text", "text": text}], "isError": False})

    async def list_resources(self) -> ModelPayload:
        if self.fail_with is not None:
            raise self.fail_with
        return ModelPayload({"resources": [README_RESOURCE]})


class FakeSessionFactory:
    def __init__(
        self,
        *,
        tools: list[dict[str, Any]] | None = None,
        fail_on_enter: Exception | None = None,
        hang_on_enter: bool = False,
    ) -> None:
        self.tools = tools
        self.fail_on_enter = fail_on_enter
        self.hang_on_enter = hang_on_enter
        self.sessions: list[FakeToolSession] = []
        self.entered = 0
        self.exited = 0

    @asynccontextmanager
    async def __call__(self, _: ServerDescriptor) -> Any:
        self.entered += 1
        try:
            if self.hang_on_enter:
                await asyncio.Event().wait()
            if self.fail_on_enter is not None:
                raise self.fail_on_enter
            session = FakeToolSession(self.tools)
            self.sessions.append(session)
            yield session
        finally:
            self.exited += 1


class FakeTransport:
    def __init__(self, tools: list[ToolDescriptor] | None = None) -> None:
        self.tools = [ToolDescriptor.model_validate(ECHO_TOOL)] if tools is None else tools
        self.resources = [ResourceDescriptor.model_validate(README_RESOURCE)]
        self.open_calls = 0
        self.close_calls = 0
        self.list_calls = 0
        self.tool_calls: list[tuple[str, JSONObject]] = []
        self.fail_open: Exception | None = None
        self.fail_list: Exception | None = None
        self.fail_call: Exception | None = None
        self.open_gate: asyncio.Event | None = None
        self.list_gate: asyncio.Event | None = None

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.fail_open is not None:
            raise self.fail_open

    async def list_tools(self) -> list[ToolDescriptor]:
        self.list_calls += 1
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.tools)

    async def call_tool(self, name: str, arguments: JSONObject) -> JSONValue:
        self.tool_calls.append((name, arguments))
        if self.fail_call is not None:
            raise self.fail_call
        return {"content": [{"type": "text", "text": str(arguments.get("text", ""))}]}

    async def list_resources(self) -> list[ResourceDescriptor]:
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.resources)

    async def close(self) -> None:
        self.close_calls += 1


class FakeTransportFactory:
    """Hands out one FakeTransport per server id, created on first use."""

    def __init__(self) -> None:
        self.transports: dict[str, FakeTransport] = {}

    def transport(self, server_id: str) -> FakeTransport:
        return self.transports.setdefault(server_id, FakeTransport())

    def __call__(self, descriptor: ServerDescriptor) -> FakeTransport:
        return self.transport(descriptor.id)


class StaticProbe:
    def __init__(self, reachable: bool | None = True, message: str = "ok") -> None:
        self._reachable = reachable
        self._message = message
        self.probed: list[str] = []

    async def probe(self, descriptor: ServerDescriptor) -> ProbeResult:
        self.probed.append(descriptor.id)
        return ProbeResult(reachable=self._reachable, advisory=True, message=self._message)
