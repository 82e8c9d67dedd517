from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Index, text
from sqlmodel import Field, SQLModel

from lifelink.utils.time import utcnow

DONATION_STATUSES: tuple[str, ...] = ("pending", "scheduled", "completed", "cancelled")
TERMINAL_DONATION_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})

_ACTIVE = text("status != 'cancelled'")


class Donation(SQLModel, table=True):
    # At most one non-cancelled donation per (donor, request). The partial index
    # makes the check-and-insert atomic in the store itself.
    __table_args__ = (
        Index(
            "uq_donation_active_pair",
            "donor_id",
            "request_id",
            unique=True,
            sqlite_where=_ACTIVE,
            postgresql_where=_ACTIVE,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="donor.id", index=True)
    request_id: int = Field(foreign_key="request.id", index=True)
    status: str = Field(default="pending", index=True)  # pending | scheduled | completed | cancelled
    quantity: int = 1
    scheduled_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))  # future when set
    completed_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))  # past-or-now when set
    notes: Optional[str] = Field(default=None, max_length=1000)
    result: Optional[str] = None  # hospital feedback: successful | failed
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False, onupdate=utcnow))
