from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from lifelink.utils.time import utcnow

ROLES: tuple[str, ...] = ("donor", "hospital", "admin")


class User(SQLModel, table=True):
    """Identity shared by every role.

    ``role`` is the variant tag; donor and hospital specific fields live in the
    ``donor`` / ``hospital`` payload tables under the same id. Admins carry no
    payload.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    full_name: str = Field(max_length=100)
    email: str = Field(index=True, unique=True)
    role: str = Field(default="donor", index=True)  # donor | hospital | admin
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
