"""MCP server and tool routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from chatmcp.api.deps import get_orchestrator
from chatmcp.api.schemas.mcp import (
    AllToolsResponse,
    CallToolRequest,
    CallToolResponse,
    CatalogToolResponse,
    InvocationEventResponse,
    InvocationEventsResponse,
    ProbeResponse,
    RegisterServerRequest,
    ResourceResponse,
    ResourcesResponse,
    ServerMutationResponse,
    ServerResponse,
    ServersResponse,
    ServersToolsResponse,
    ServerToolsResponse,
    ToolResponse,
    ToolsResponse,
)
from chatmcp.core.tool_orchestrator import ToolOrchestrator
from chatmcp.mcp.directory import CatalogTool, ServerTools
from chatmcp.mcp.registry import Session
from chatmcp.models.server import ToolDescriptor

router = APIRouter(prefix="/api/mcp", tags=["mcp"])


def _as_response(session: Session) -> ServerResponse:
    descriptor = session.descriptor
    probe = session.probe
    return ServerResponse(
        id=descriptor.id,
        name=descriptor.name,
        transport=descriptor.transport,
        command=descriptor.command,
        args=list(descriptor.args),
        url=descriptor.url,
        description=descriptor.description,
        is_connected=session.connected,
        status=session.status,
        enabled=session.enabled,
        last_error=session.last_error,
        connected_at=session.connected_at,
        tool_count=len(session.tools),
        probe=(
            ProbeResponse(
                reachable=probe.reachable,
                advisory=probe.advisory,
                message=probe.message,
                checked_at=probe.checked_at,
            )
            if probe is not None
            else None
        ),
    )


def _tool_response(tool: ToolDescriptor) -> ToolResponse:
    return ToolResponse(
        name=tool.name,
        description=tool.description,
        input_schema=tool.input_schema,
    )


def _server_tools_response(entry: ServerTools) -> ServerToolsResponse:
    return ServerToolsResponse(
        server_id=entry.server_id,
        tools=[_tool_response(tool) for tool in entry.tools],
    )


def _catalog_tool_response(entry: CatalogTool) -> CatalogToolResponse:
    return CatalogToolResponse(
        name=entry.tool.name,
        description=entry.tool.description,
        input_schema=entry.tool.input_schema,
        server_id=entry.server_id,
        full_name=entry.full_name,
    )


@router.get("/servers", response_model=ServersResponse)
async def list_servers(
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ServersResponse:
    return ServersResponse(
        servers=[_as_response(session) for session in orchestrator.list_servers()]
    )


@router.post(
    "/servers",
    response_model=ServerMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_server(
    request: RegisterServerRequest,
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ServerMutationResponse:
    session = await orchestrator.add_server(request.to_descriptor())
    return ServerMutationResponse(server=_as_response(session))


@router.delete("/servers", response_model=ServerMutationResponse)
async def remove_server(
    server_id: str | None = Query(default=None, alias="id"),
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ServerMutationResponse | JSONResponse:
    if not server_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Server ID is required"},
        )
    await orchestrator.remove_server(server_id)
    return ServerMutationResponse()


@router.post("/servers/{server_id}/toggle", response_model=ServerMutationResponse)
async def toggle_server(
    server_id: str,
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ServerMutationResponse:
    session = await orchestrator.toggle_server(server_id)
    return ServerMutationResponse(server=_as_response(session))


@router.get("/tools", response_model=ToolsResponse | ServersToolsResponse)
async def list_tools(
    server_id: str | None = Query(default=None, alias="serverId"),
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ToolsResponse | ServersToolsResponse:
    if server_id:
        tools = await orchestrator.list_tools(server_id)
        return ToolsResponse(tools=[_tool_response(tool) for tool in tools])
    servers = await orchestrator.get_all_tools()
    return ServersToolsResponse(servers=[_server_tools_response(entry) for entry in servers])


@router.get("/resources", response_model=ResourcesResponse)
async def list_resources(
    server_id: str = Query(alias="serverId", min_length=1),
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> ResourcesResponse:
    resources = await orchestrator.list_resources(server_id)
    return ResourcesResponse(
        resources=[
            ResourceResponse(
                uri=resource.uri,
                name=resource.name,
                description=resource.description,
                mime_type=resource.mime_type,
            )
            for resource in resources
        ]
    )


@router.post("/tools", response_model=CallToolResponse)
async def call_tool(
    request: CallToolRequest,
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> CallToolResponse:
    result = await orchestrator.call_tool(
        request.server_id, request.tool_name, request.arguments or {}
    )
    return CallToolResponse(result=result.result, request_id=result.request_id)


@router.get("/all-tools", response_model=AllToolsResponse)
async def all_tools(
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> AllToolsResponse:
    servers = await orchestrator.refresh_tools()
    return AllToolsResponse(
        tools=[_catalog_tool_response(entry) for entry in orchestrator.flattened_catalog(servers)],
        servers=[_server_tools_response(entry) for entry in servers],
    )


@router.get("/events", response_model=InvocationEventsResponse)
async def invocation_events(
    server_id: str | None = Query(default=None, alias="serverId"),
    tool_name: str | None = Query(default=None, alias="toolName"),
    limit: int | None = None,
    orchestrator: ToolOrchestrator = Depends(get_orchestrator),
) -> InvocationEventsResponse:
    events = orchestrator.dispatcher.list_events(
        server_id=server_id,
        tool_name=tool_name,
        limit=limit,
    )
    return InvocationEventsResponse(
        items=[
            InvocationEventResponse(
                server_id=event.server_id,
                tool_name=event.tool_name,
                request_id=event.request_id,
                phase=event.phase,
                timestamp=event.timestamp,
                error=event.error,
                error_category=event.error_category,
            )
            for event in events
        ]
    )
