from fastapi import APIRouter, Depends, HTTPException, Request, status

from isuite.api.deps import get_tool_gateway, require_user
from isuite.core.limiter import endpoint_limit, limiter
from isuite.core.logging import logger
from isuite.schemas import User
from isuite.schemas.connections import AdminConnection, AdminUser, AdminUsersResponse
from isuite.services.tool_gateway import ToolGatewayClient, ToolGatewayError, group_connections_by_user

router = APIRouter()


@router.get("/users", response_model=AdminUsersResponse)
@limiter.limit(endpoint_limit("admin"))
async def list_users(
    request: Request,
    user: User = Depends(require_user),
    gateway: ToolGatewayClient = Depends(get_tool_gateway),
):
    """Every user the tool platform knows about, with their connections.

    Records without a user id are reported together under "unknown".
    """
    try:
        connections = await gateway.list_connections()
    except ToolGatewayError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)

    users = [
        AdminUser(
            user_id=user_id,
            connections=[
                AdminConnection(id=c.id, toolkit=c.toolkit_slug, status=c.status, created_at=c.created_at)
                for c in grouped
            ],
            total_connections=len(grouped),
        )
        for user_id, grouped in group_connections_by_user(connections).items()
    ]
    logger.info("admin_users_listed", requested_by=user.id, total_users=len(users))
    return AdminUsersResponse(total_users=len(users), users=users)
