import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import Field, field_validator

from isuite.schemas.base import CamelModel

UNKNOWN = "unknown"


class Connection(CamelModel):
    """
    A per-user authorized link to a toolkit. Owned by the tool platform,
    read-only from our side.
    """
    id: str
    user_id: str = UNKNOWN
    toolkit_slug: str = UNKNOWN
    status: str = ""
    created_at: Optional[Union[datetime, str]] = None

    @classmethod
    def from_upstream(cls, item: Dict[str, Any]) -> "Connection":
        """Build from a raw connected-account record, tolerating both key styles."""
        toolkit = item.get("toolkit") or {}
        if isinstance(toolkit, str):
            toolkit_slug = toolkit
        else:
            toolkit_slug = toolkit.get("slug") or toolkit.get("name") or item.get("integrationId") or UNKNOWN
        return cls(
            id=str(item.get("id") or item.get("nanoid") or ""),
            user_id=item.get("user_id") or item.get("userId") or UNKNOWN,
            toolkit_slug=toolkit_slug,
            status=item.get("status") or "",
            created_at=item.get("created_at") or item.get("createdAt"),
        )

    @property
    def is_active(self) -> bool:
        return self.status.upper() == "ACTIVE"


class ConnectionsResponse(CamelModel):
    connections: List[Connection]


class Toolkit(CamelModel):
    id: str
    name: str
    description: str
    connected: bool = False


class ToolkitsResponse(CamelModel):
    toolkits: List[Toolkit]


class ConnectRequest(CamelModel):
    toolkit: str = Field(..., min_length=1, max_length=64)

    @field_validator("toolkit")
    @classmethod
    def validate_toolkit(cls, v: str) -> str:
        v = v.strip().lower()
        if not re.fullmatch(r"[a-z0-9_-]+", v):
            raise ValueError("Toolkit slug may only contain letters, digits, '-' and '_'")
        return v


class ConnectResponse(CamelModel):
    success: bool = True
    redirect_url: str


class DisconnectRequest(CamelModel):
    connection_id: str = Field(..., min_length=1)


# Admin schemas
class AdminConnection(CamelModel):
    id: str
    toolkit: str
    status: str
    created_at: Optional[Union[datetime, str]] = None


class AdminUser(CamelModel):
    user_id: str
    connections: List[AdminConnection] = Field(default_factory=list)
    total_connections: int = 0


class AdminUsersResponse(CamelModel):
    success: bool = True
    total_users: int
    users: List[AdminUser]
