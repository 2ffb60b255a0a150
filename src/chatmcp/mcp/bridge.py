"""Best-effort client for the local file-operations bridge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import httpx

from chatmcp.mcp.fallback import demo_analysis, demo_file_content, demo_file_list

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_URL = "http://localhost:3001"


class BridgeOperation(StrEnum):
    """File operations understood by the bridge."""

    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    ANALYZE_PROJECT = "analyze_project"


_FALLBACKS: dict[BridgeOperation, Callable[[str], dict[str, Any]]] = {
    BridgeOperation.LIST_FILES: demo_file_list,
    BridgeOperation.READ_FILE: demo_file_content,
    BridgeOperation.ANALYZE_PROJECT: demo_analysis,
}


class BridgeClient:
    """Talk to the bridge when it is up and synthesize results when it is not.

    Connectivity is whatever the last `check_connection` observed. No
    operation on this client raises.
    """

    def __init__(
        self,
        bridge_url: str = DEFAULT_BRIDGE_URL,
        *,
        timeout_seconds: float = 5.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bridge_url = bridge_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._http_transport = http_transport
        self._connected = False
        self._last_checked_at: datetime | None = None

    @property
    def bridge_url(self) -> str:
        return self._bridge_url

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def last_checked_at(self) -> datetime | None:
        return self._last_checked_at

    async def check_connection(self) -> bool:
        """Probe `GET /health` and cache the result until the next check."""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._bridge_url}/health",
                    headers={"Content-Type": "application/json"},
                )
            self._connected = response.is_success
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "Bridge server not available at %s, using demo mode: %s", self._bridge_url, exc
            )
            self._connected = False
        self._last_checked_at = datetime.now(UTC)
        return self._connected

    async def run_health_checks(self, interval_seconds: float) -> None:
        """Re-check connectivity every interval; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            await self.check_connection()

    async def analyze_project(self, project_path: str) -> dict[str, Any]:
        return await self.file_operation(BridgeOperation.ANALYZE_PROJECT, project_path)

    async def list_files(self, dir_path: str) -> dict[str, Any]:
        return await self.file_operation(BridgeOperation.LIST_FILES, dir_path)

    async def read_file(self, file_path: str) -> dict[str, Any]:
        return await self.file_operation(BridgeOperation.READ_FILE, file_path)

    async def file_operation(self, operation: BridgeOperation, path: str) -> dict[str, Any]:
        fallback = _FALLBACKS[operation]
        if not self._connected:
            return fallback(path)

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._bridge_url}/api/mcp/file-operations",
                    json={"operation": operation.value, "path": path},
                )
            response.raise_for_status()
            payload = response.json()
        except Exception as exc:  # noqa: BLE001
            logger.error("Bridge %s failed for %s, using demo data: %s", operation, path, exc)
            return fallback(path)

        if not isinstance(payload, dict):
            logger.error("Bridge %s returned a non-object payload, using demo data", operation)
            return fallback(path)
        return payload

    def status(self) -> dict[str, Any]:
        return {
            "bridgeUrl": self._bridge_url,
            "connected": self._connected,
            "lastCheckedAt": self._last_checked_at,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._http_transport)
