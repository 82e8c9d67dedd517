from typing import Optional

from sqlmodel import Field, SQLModel

from lifelink.utils.geo import Location


class Hospital(SQLModel, table=True):
    id: Optional[int] = Field(default=None, foreign_key="user.id", primary_key=True)
    hospital_name: str
    license_number: str
    contact_number: Optional[str] = None

    city: Optional[str] = None
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def location(self) -> Location:
        return Location(self.city, self.region, self.latitude, self.longitude)
