"""FastAPI app entrypoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chatmcp.api.deps import build_bridge_client, build_orchestrator
from chatmcp.api.routes.bridge import router as bridge_router
from chatmcp.api.routes.mcp import router as mcp_router
from chatmcp.config import Settings, get_settings, load_server_descriptors
from chatmcp.core.tool_orchestrator import ToolOrchestrator
from chatmcp.logging_config import configure_logging
from chatmcp.mcp.bridge import BridgeClient
from chatmcp.mcp.errors import (
    DuplicateServerError,
    InvalidDescriptorError,
    OrchestrationError,
    ServerConnectionError,
    ServerNotConnectedError,
    ServerNotFoundError,
    ToolInvocationError,
    ToolNotFoundError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: tuple[tuple[type[OrchestrationError], int], ...] = (
    (InvalidDescriptorError, status.HTTP_400_BAD_REQUEST),
    (ServerNotFoundError, status.HTTP_404_NOT_FOUND),
    (ToolNotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateServerError, status.HTTP_409_CONFLICT),
    (ServerNotConnectedError, status.HTTP_409_CONFLICT),
    (ServerConnectionError, status.HTTP_502_BAD_GATEWAY),
)


def validation_message(exc: RequestValidationError) -> str:
    missing: list[str] = []
    problems: list[str] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        if error.get("type") == "missing":
            missing.append(field)
        else:
            problems.append(f"{field}: {error.get('msg', 'invalid value')}")
    if missing:
        problems.insert(0, f"Missing required fields: {', '.join(missing)}")
    return "; ".join(problems) or "Invalid request"


def error_status(exc: OrchestrationError) -> int:
    if isinstance(exc, ToolInvocationError):
        if exc.category == "network_timeout":
            return status.HTTP_504_GATEWAY_TIMEOUT
        return status.HTTP_502_BAD_GATEWAY
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _connect_configured_servers(orchestrator: ToolOrchestrator, settings: Settings) -> None:
    if settings.servers_file is None:
        return
    try:
        descriptors = load_server_descriptors(settings.servers_file)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load servers from %s: %s", settings.servers_file, exc)
        return
    for descriptor in descriptors:
        try:
            await orchestrator.add_server(descriptor)
        except OrchestrationError as exc:
            logger.error("Failed to connect configured server %s: %s", descriptor.id, exc)


def create_app(
    settings: Settings | None = None,
    *,
    orchestrator: ToolOrchestrator | None = None,
    bridge: BridgeClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    orchestrator = orchestrator or build_orchestrator(settings)
    bridge = bridge or build_bridge_client(settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level)
        await bridge.check_connection()
        monitor: asyncio.Task[None] | None = None
        if settings.bridge_health_interval_seconds > 0:
            monitor = asyncio.create_task(
                bridge.run_health_checks(settings.bridge_health_interval_seconds)
            )
        await _connect_configured_servers(orchestrator, settings)
        try:
            yield
        finally:
            try:
                if monitor is not None:
                    monitor.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await monitor
            finally:
                await orchestrator.shutdown()

    app = FastAPI(title="chatmcp API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.bridge = bridge
    app.include_router(mcp_router)
    app.include_router(bridge_router)

    @app.exception_handler(OrchestrationError)
    async def orchestration_error(_: Request, exc: OrchestrationError) -> JSONResponse:
        return JSONResponse(status_code=error_status(exc), content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": validation_message(exc)},
        )

    @app.get("/api/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("chatmcp.api.app:app", host=settings.api_host, port=settings.api_port, reload=False)
