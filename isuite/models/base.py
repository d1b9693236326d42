from datetime import datetime, UTC
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(UTC)


# Base Database Model
class BaseModel(SQLModel):
    """Shared columns for every table."""
    # stored in UTC, converted only at the edges
    created_at: datetime = Field(default_factory=utc_now)
