"""Facade the rest of the application uses to manage MCP servers and tools."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from chatmcp.mcp.directory import CatalogTool, ServerTools, ToolDirectory
from chatmcp.mcp.dispatcher import InvocationDispatcher, InvocationResult
from chatmcp.mcp.errors import ServerNotFoundError
from chatmcp.mcp.registry import Session, SessionRegistry
from chatmcp.models.server import ResourceDescriptor, ServerDescriptor, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolOrchestrator:
    """Add/remove servers, aggregate their tools and dispatch tool calls.

    One instance per process, constructed explicitly and passed to whatever
    serves requests. All registry mutation goes through this class.
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        *,
        directory: ToolDirectory | None = None,
        dispatcher: InvocationDispatcher | None = None,
    ) -> None:
        self._registry = registry or SessionRegistry()
        self._directory = directory or ToolDirectory(self._registry)
        self._dispatcher = dispatcher or InvocationDispatcher(self._registry)
        self._catalog: list[ServerTools] = []

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> InvocationDispatcher:
        return self._dispatcher

    @property
    def catalog(self) -> list[ServerTools]:
        """Aggregate catalog from the last refresh."""
        return list(self._catalog)

    async def add_server(self, descriptor: ServerDescriptor) -> Session:
        session = await self._registry.add(descriptor)
        await self.refresh_tools()
        return session

    async def remove_server(self, server_id: str) -> None:
        await self._registry.remove(server_id)
        await self.refresh_tools()

    async def toggle_server(self, server_id: str) -> Session:
        """Flip the logical enabled flag without touching the transport."""
        session = self._registry.get(server_id)
        if session is None:
            raise ServerNotFoundError(server_id)
        session.enabled = not session.enabled
        logger.info("Server %s %s", server_id, "enabled" if session.enabled else "disabled")
        await self.refresh_tools()
        return session

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> InvocationResult:
        return await self._dispatcher.call_tool(server_id, tool_name, arguments)

    async def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        return await self._directory.list_tools(server_id)

    async def list_resources(self, server_id: str) -> list[ResourceDescriptor]:
        return await self._directory.list_resources(server_id)

    async def get_all_tools(self) -> list[ServerTools]:
        return await self._directory.all_tools()

    async def refresh_tools(self) -> list[ServerTools]:
        self._catalog = await self._directory.all_tools()
        return self.catalog

    def flattened_catalog(self, servers: list[ServerTools] | None = None) -> list[CatalogTool]:
        return self._directory.flatten(self._catalog if servers is None else servers)

    def list_servers(self) -> list[Session]:
        return sorted(self._registry.all(), key=lambda session: session.server_id)

    def get_server(self, server_id: str) -> Session | None:
        return self._registry.get(server_id)

    async def shutdown(self) -> None:
        await self._registry.disconnect_all()
        self._catalog = []
