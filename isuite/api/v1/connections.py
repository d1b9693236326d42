"""
Toolkit connections of the current user.

Connection state lives on the tool platform; these routes only proxy
list / connect / disconnect and map upstream failures to 502.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status

from isuite.api.deps import get_tool_gateway, require_user
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.schemas import User
from isuite.schemas.connections import (
    ConnectionsResponse,
    ConnectRequest,
    ConnectResponse,
    DisconnectRequest,
    Toolkit,
    ToolkitsResponse,
)
from isuite.schemas.auth import SuccessResponse
from isuite.services.tool_gateway import AVAILABLE_TOOLKITS, ToolGatewayClient, ToolGatewayError

router = APIRouter()


def upstream_error(e: ToolGatewayError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)


@router.get("", response_model=ConnectionsResponse)
@limiter.limit(endpoint_limit("connections"))
async def list_connections(
    request: Request,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
):
    try:
        connections = await gateway.list_connections(user.id)
    except ToolGatewayError as e:
        raise upstream_error(e)
    return ConnectionsResponse(connections=connections)


@router.get("/toolkits", response_model=ToolkitsResponse)
@limiter.limit(endpoint_limit("connections"))
async def list_toolkits(
    request: Request,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
):
    """The toolkit catalog, flagged with what the user already has ACTIVE."""
    try:
        connections = await gateway.list_connections(user.id)
    except ToolGatewayError as e:
        raise upstream_error(e)

    active = {c.toolkit_slug for c in connections if c.is_active}
    toolkits = [Toolkit(**toolkit, connected=toolkit["id"] in active) for toolkit in AVAILABLE_TOOLKITS]
    return ToolkitsResponse(toolkits=toolkits)


@router.post("/connect", response_model=ConnectResponse)
@limiter.limit(endpoint_limit("connections"))
async def connect(
    request: Request,
    payload: ConnectRequest,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
):
    """Start the OAuth handshake for a toolkit.

    The caller opens `redirectUrl` and polls GET /connections until the
    toolkit shows up as ACTIVE.
    """
    try:
        redirect_url = await gateway.initiate_connection(user.id, payload.toolkit)
    except ToolGatewayError as e:
        raise upstream_error(e)
    return ConnectResponse(redirect_url=redirect_url)


@router.post("/disconnect", response_model=SuccessResponse)
@limiter.limit(endpoint_limit("connections"))
async def disconnect(
    request: Request,
    payload: DisconnectRequest,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
):
    try:
        connections = await gateway.list_connections(user.id)
        if not any(c.id == payload.connection_id for c in connections):
            logger.warning("disconnect_foreign_connection", user_id=user.id, connection_id=payload.connection_id)
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
        await gateway.remove_connection(payload.connection_id)
    except ToolGatewayError as e:
        raise upstream_error(e)

    logger.info("connection_disconnected", user_id=user.id, connection_id=payload.connection_id)
    return SuccessResponse()
