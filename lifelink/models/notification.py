from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from lifelink.utils.time import utcnow

NOTIFICATION_TYPES: tuple[str, ...] = ("match", "request", "milestone")
RELATED_TYPES: tuple[str, ...] = ("Request", "Donation", "User", "Achievement")


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    type: str  # match | request | milestone
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    read: bool = Field(default=False, index=True)
    related_id: Optional[int] = None
    related_type: Optional[str] = None  # Request | Donation | User | Achievement
    data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
