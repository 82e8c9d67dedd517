from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from lifelink.utils.time import utcnow

REQUEST_KINDS: tuple[str, ...] = ("blood", "organ")
ORGAN_TYPES: tuple[str, ...] = ("kidney", "liver", "heart", "lung", "pancreas", "cornea")
URGENCIES: tuple[str, ...] = ("low", "medium", "high", "critical")
REQUEST_STATUSES: tuple[str, ...] = ("pending", "in-progress", "completed", "cancelled")
ACTIVE_REQUEST_STATUSES: tuple[str, ...] = ("pending", "in-progress")
TERMINAL_REQUEST_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})


class Request(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    hospital_id: int = Field(foreign_key="hospital.id", index=True)
    kind: str  # blood | organ
    blood_type: Optional[str] = None  # set only for blood requests
    organ_type: Optional[str] = None  # set only for organ requests
    urgency: str = Field(index=True)  # low | medium | high | critical
    status: str = Field(default="pending", index=True)  # pending | in-progress | completed | cancelled
    required_by: datetime = Field(sa_column=Column(DateTime, nullable=False))
    quantity: int = 1
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False, onupdate=utcnow))

    @property
    def wanted(self) -> str:
        """Human label, e.g. ``"O+ blood"`` or ``"kidney organ"``."""
        if self.kind == "blood":
            return f"{self.blood_type} blood"
        return f"{self.organ_type} organ"
