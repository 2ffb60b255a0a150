"""Reachability probes that never commit resources."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import urlsplit

import httpx

from chatmcp.models.server import ServerDescriptor, TransportKind

logger = logging.getLogger(__name__)

WEBSOCKET_SCHEMES = frozenset({"ws", "wss"})
HTTP_SCHEMES = frozenset({"http", "https"})


@dataclass(slots=True)
class ProbeResult:
    """Outcome of one reachability probe.

    `reachable` is None when the transport cannot be probed without a real
    session (websocket). `advisory` results never block a connection attempt.
    """

    reachable: bool | None
    advisory: bool
    message: str
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class TransportProbe:
    """Answer "can I reach this server right now?" per transport."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 5.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._http_transport = http_transport

    async def probe(self, descriptor: ServerDescriptor) -> ProbeResult:
        try:
            if descriptor.transport is TransportKind.STDIO:
                return self._probe_stdio(descriptor)
            if descriptor.transport is TransportKind.SSE:
                return await self._probe_sse(descriptor)
            return self._probe_websocket(descriptor)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Probe for %s raised unexpectedly: %s", descriptor.id, exc)
            return ProbeResult(reachable=False, advisory=True, message=str(exc))

    @staticmethod
    def _probe_stdio(descriptor: ServerDescriptor) -> ProbeResult:
        command = descriptor.command or ""
        resolved = shutil.which(command)
        if resolved is None:
            return ProbeResult(
                reachable=False,
                advisory=False,
                message=f"command not found: {command}",
            )
        return ProbeResult(reachable=True, advisory=False, message=f"command resolved: {resolved}")

    async def _probe_sse(self, descriptor: ServerDescriptor) -> ProbeResult:
        url = descriptor.url or ""
        headers = {**descriptor.headers, "Accept": "text/event-stream"}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._http_transport,
            ) as client:
                response = await client.head(url, headers=headers)
        except httpx.HTTPError as exc:
            message = str(exc) or type(exc).__name__
            return ProbeResult(reachable=False, advisory=True, message=message)

        status_code = response.status_code
        # 405: the server rejects HEAD but is otherwise healthy.
        if 200 <= status_code < 300 or status_code == 405:
            return ProbeResult(reachable=True, advisory=True, message=f"http {status_code}")
        return ProbeResult(reachable=False, advisory=True, message=f"http {status_code}")

    @staticmethod
    def _probe_websocket(descriptor: ServerDescriptor) -> ProbeResult:
        scheme = urlsplit(descriptor.url or "").scheme.lower()
        if scheme not in WEBSOCKET_SCHEMES:
            return ProbeResult(
                reachable=False,
                advisory=True,
                message=f"unsupported websocket scheme: {scheme or '<none>'}",
            )
        return ProbeResult(reachable=None, advisory=True, message="not probed until first use")
