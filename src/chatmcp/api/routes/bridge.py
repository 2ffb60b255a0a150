"""File-operations bridge routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from chatmcp.api.deps import get_bridge_client
from chatmcp.api.schemas.mcp import BridgeStatusResponse, FileOperationRequest
from chatmcp.mcp.bridge import BridgeClient

router = APIRouter(prefix="/api/mcp/bridge", tags=["bridge"])


def _status_response(bridge: BridgeClient) -> BridgeStatusResponse:
    return BridgeStatusResponse.model_validate(bridge.status())


@router.get("", response_model=BridgeStatusResponse)
async def bridge_status(
    bridge: BridgeClient = Depends(get_bridge_client),
) -> BridgeStatusResponse:
    return _status_response(bridge)


@router.post("/check", response_model=BridgeStatusResponse)
async def check_bridge(
    bridge: BridgeClient = Depends(get_bridge_client),
) -> BridgeStatusResponse:
    await bridge.check_connection()
    return _status_response(bridge)


@router.post("/file-operations")
async def file_operation(
    request: FileOperationRequest,
    bridge: BridgeClient = Depends(get_bridge_client),
) -> dict[str, Any]:
    return await bridge.file_operation(request.operation, request.path)
