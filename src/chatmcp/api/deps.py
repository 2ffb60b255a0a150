"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Request

from chatmcp.config import Settings
from chatmcp.core.tool_orchestrator import ToolOrchestrator
from chatmcp.mcp.bridge import BridgeClient
from chatmcp.mcp.dispatcher import InvocationDispatcher
from chatmcp.mcp.probe import TransportProbe
from chatmcp.mcp.registry import SessionRegistry
from chatmcp.mcp.transports import DefaultTransportFactory


def build_orchestrator(settings: Settings) -> ToolOrchestrator:
    registry = SessionRegistry(
        probe=TransportProbe(timeout_seconds=settings.probe_timeout_seconds),
        transport_factory=DefaultTransportFactory(
            handshake_timeout_seconds=settings.handshake_timeout_seconds,
            call_timeout_seconds=settings.call_timeout_seconds,
        ),
    )
    dispatcher = InvocationDispatcher(registry, max_events=settings.max_invocation_events)
    return ToolOrchestrator(registry, dispatcher=dispatcher)


def build_bridge_client(settings: Settings) -> BridgeClient:
    return BridgeClient(settings.bridge_url, timeout_seconds=settings.bridge_timeout_seconds)


def get_orchestrator(request: Request) -> ToolOrchestrator:
    return request.app.state.orchestrator


def get_bridge_client(request: Request) -> BridgeClient:
    return request.app.state.bridge
