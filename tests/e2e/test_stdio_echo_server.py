from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest

from chatmcp.core.tool_orchestrator import ToolOrchestrator
from chatmcp.mcp.errors import ServerNotConnectedError
from chatmcp.mcp.registry import SessionRegistry
from chatmcp.mcp.transports import DefaultTransportFactory
from tests.support.mcp_helpers import stdio_descriptor

ECHO_SERVER = Path(__file__).resolve().parents[1] / "support" / "echo_server.py"


def _is_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    try:
        stat = Path(f"/proc/{pid}/stat").read_text(encoding="utf-8")
    except OSError:
        return True
    return stat.rsplit(")", 1)[1].split()[0] != "Z"


async def _wait_for_exit(pid: int, timeout: float = 5.0) -> None:
    async with asyncio.timeout(timeout):
        while _is_running(pid):
            await asyncio.sleep(0.05)


def _text(result: object) -> str:
    assert isinstance(result, dict)
    return result["content"][0]["text"]


@pytest.mark.asyncio
async def test_stdio_server_lifecycle_over_mcp_sdk() -> None:
    orchestrator = ToolOrchestrator(
        SessionRegistry(transport_factory=DefaultTransportFactory(handshake_timeout_seconds=30.0))
    )
    descriptor = stdio_descriptor(
        "echo",
        command=sys.executable,
        args=[str(ECHO_SERVER)],
        env={"CHATMCP_ECHO_MARKER": "42"},
    )

    session = await orchestrator.add_server(descriptor)
    assert session.connected is True

    tools = await orchestrator.list_tools("echo")
    assert sorted(tool.name for tool in tools) == ["echo", "pid", "read_env"]

    echoed = await orchestrator.call_tool("echo", "echo", {"text": "hello"})
    assert _text(echoed.result) == "hello"

    marker = await orchestrator.call_tool("echo", "read_env", {"name": "CHATMCP_ECHO_MARKER"})
    assert _text(marker.result) == "42"
    inherited = await orchestrator.call_tool("echo", "read_env", {"name": "PATH"})
    assert _text(inherited.result) == os.environ["PATH"]

    resources = await orchestrator.list_resources("echo")
    assert [resource.uri for resource in resources] == ["echo://readme"]

    server_pid = int(_text((await orchestrator.call_tool("echo", "pid", {})).result))
    assert _is_running(server_pid)

    await orchestrator.remove_server("echo")
    await _wait_for_exit(server_pid)

    with pytest.raises(ServerNotConnectedError):
        await orchestrator.list_tools("echo")
    with pytest.raises(ServerNotConnectedError):
        await orchestrator.call_tool("echo", "echo", {"text": "again"})
