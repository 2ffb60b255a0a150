"""Per-session tool catalogs and their aggregation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from chatmcp.mcp.registry import SessionRegistry
from chatmcp.models.server import ResourceDescriptor, ToolDescriptor, full_tool_name

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ServerTools:
    """Tools reported by one connected server."""

    server_id: str
    tools: tuple[ToolDescriptor, ...]


@dataclass(slots=True, frozen=True)
class CatalogTool:
    """One tool annotated with its owning server."""

    server_id: str
    tool: ToolDescriptor

    @property
    def full_name(self) -> str:
        return full_tool_name(self.server_id, self.tool.name)


class ToolDirectory:
    """Query, cache and aggregate tool lists across sessions.

    Resource listings are passed through per server and never cached.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    async def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        """Fetch the live tool list; the session's cache is replaced whole."""
        session = self._registry.require_connected(server_id)
        return await session.list_tools()

    async def list_resources(self, server_id: str) -> list[ResourceDescriptor]:
        session = self._registry.require_connected(server_id)
        try:
            return await session.list_resources()
        except Exception as exc:
            logger.error("Failed to list resources from server %s: %s", server_id, exc)
            raise

    def cached_tools(self, server_id: str) -> tuple[ToolDescriptor, ...]:
        session = self._registry.get(server_id)
        if session is None:
            return ()
        return session.tools

    async def all_tools(self) -> list[ServerTools]:
        """List tools of every connected server concurrently.

        Failing servers are logged and omitted. Servers removed or disabled
        while the listing was in flight are omitted as well.
        """
        sessions = [session for session in self._registry.all() if session.connected]
        results = await asyncio.gather(
            *(self.list_tools(session.server_id) for session in sessions),
            return_exceptions=True,
        )

        collected: list[ServerTools] = []
        for session, result in zip(sessions, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to get tools from server %s: %s",
                    session.server_id,
                    result,
                )
                continue
            if self._registry.get(session.server_id) is not session or not session.connected:
                continue
            collected.append(ServerTools(server_id=session.server_id, tools=tuple(result)))
        return collected

    @staticmethod
    def flatten(servers: list[ServerTools]) -> list[CatalogTool]:
        return [
            CatalogTool(server_id=entry.server_id, tool=tool)
            for entry in servers
            for tool in entry.tools
        ]
