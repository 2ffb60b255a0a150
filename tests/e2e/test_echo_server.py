from __future__ import annotations

import httpx
from fastapi.testclient import TestClient

from chatmcp.api.app import create_app
from chatmcp.config import Settings
from chatmcp.core.tool_orchestrator import ToolOrchestrator
from chatmcp.mcp.bridge import BridgeClient
from chatmcp.mcp.registry import SessionRegistry
from chatmcp.mcp.transports import DefaultTransportFactory
from tests.support.mcp_helpers import FakeSessionFactory, StaticProbe


def _client(sessions: FakeSessionFactory) -> TestClient:
    registry = SessionRegistry(
        probe=StaticProbe(),
        transport_factory=DefaultTransportFactory(session_factory=sessions),
    )
    bridge = BridgeClient(
        http_transport=httpx.MockTransport(lambda _: httpx.Response(503)),
    )
    return TestClient(
        create_app(
            Settings(_env_file=None),
            orchestrator=ToolOrchestrator(registry),
            bridge=bridge,
        )
    )


def test_e2e_echo_server_lifecycle() -> None:
    sessions = FakeSessionFactory()

    with _client(sessions) as client:
        added = client.post(
            "/api/mcp/servers",
            json={"id": "echo", "name": "Echo", "transport": "stdio", "command": "echo-server"},
        )
        assert added.status_code == 201
        assert sessions.entered == 1
        assert sessions.sessions[0].initialized is True

        catalog = client.get("/api/mcp/all-tools").json()
        assert [tool["fullName"] for tool in catalog["tools"]] == ["echo:echo"]

        called = client.post(
            "/api/mcp/tools",
            json={"serverId": "echo", "toolName": "echo", "arguments": {"text": "hello"}},
        )
        assert called.status_code == 200
        assert called.json()["result"]["content"] == [{"type": "text", "text": "hello"}]
        assert sessions.sessions[0].calls == [("echo", {"text": "hello"})]

        failed = client.post(
            "/api/mcp/tools",
            json={"serverId": "echo", "toolName": "fail", "arguments": {}},
        )
        assert failed.status_code == 404

        resources = client.get("/api/mcp/resources", params={"serverId": "echo"}).json()
        assert [resource["uri"] for resource in resources["resources"]] == ["echo://readme"]

        removed = client.delete("/api/mcp/servers", params={"id": "echo"})
        assert removed.status_code == 200
        assert sessions.exited == 1

        after = client.post(
            "/api/mcp/tools",
            json={"serverId": "echo", "toolName": "echo", "arguments": {"text": "again"}},
        )
        assert after.status_code == 409
        assert len(sessions.sessions[0].calls) == 1

        listed = client.get("/api/mcp/tools", params={"serverId": "echo"})
        assert listed.status_code == 409
        assert "echo" in listed.json()["error"]


def test_e2e_shutdown_closes_open_sessions() -> None:
    sessions = FakeSessionFactory()

    with _client(sessions) as client:
        for server_id in ("one", "two"):
            response = client.post(
                "/api/mcp/servers",
                json={"id": server_id, "name": server_id, "command": "echo-server"},
            )
            assert response.status_code == 201
        assert sessions.entered == 2

    assert sessions.exited == 2


def test_e2e_failed_handshake_registers_nothing() -> None:
    sessions = FakeSessionFactory(fail_on_enter=FileNotFoundError("echo-server"))

    with _client(sessions) as client:
        response = client.post(
            "/api/mcp/servers",
            json={"id": "echo", "name": "Echo", "command": "echo-server"},
        )
        assert response.status_code == 502
        assert client.get("/api/mcp/servers").json()["servers"] == []
