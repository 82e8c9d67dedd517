from datetime import date, datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from lifelink.utils.geo import Location

GENDERS: tuple[str, ...] = ("male", "female", "not specified")


class Donor(SQLModel, table=True):
    id: Optional[int] = Field(default=None, foreign_key="user.id", primary_key=True)
    phone_number: Optional[str] = None
    gender: str = Field(default="not specified")
    blood_type: Optional[str] = Field(default=None, index=True)  # A+ … O-, None until the donor tells us
    is_available: bool = Field(default=True, index=True)
    last_donation_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))  # start of the current cooldown window
    date_of_birth: Optional[date] = None

    city: Optional[str] = None
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Gamification
    total_donations: int = 0
    points: int = 0

    @property
    def location(self) -> Location:
        return Location(self.city, self.region, self.latitude, self.longitude)
