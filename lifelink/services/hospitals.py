from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.errors import NotFoundError, ValidationError
from lifelink.models import DONATION_STATUSES, Donation, Donor, Hospital, Request, User


async def get_hospital(session: AsyncSession, hospital_id: int) -> Hospital:
    hospital = await session.get(Hospital, hospital_id)
    if not hospital:
        raise NotFoundError("Hospital", hospital_id)
    return hospital


async def update_hospital_profile(
    session: AsyncSession,
    hospital_id: int,
    full_name: Optional[str] = None,
    hospital_name: Optional[str] = None,
    license_number: Optional[str] = None,
    contact_number: Optional[str] = None,
    city: Optional[str] = None,
    region: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Hospital:
    hospital = await get_hospital(session, hospital_id)
    if latitude is not None and not -90 <= latitude <= 90:
        raise ValidationError("Latitude must be between -90 and 90")
    if longitude is not None and not -180 <= longitude <= 180:
        raise ValidationError("Longitude must be between -180 and 180")

    updates = {
        "hospital_name": hospital_name,
        "license_number": license_number,
        "contact_number": contact_number,
        "city": city,
        "region": region,
        "latitude": latitude,
        "longitude": longitude,
    }
    for key, value in updates.items():
        if value is not None:
            setattr(hospital, key, value)
    session.add(hospital)

    if full_name:
        user = await session.get(User, hospital_id)
        if user:
            user.full_name = full_name
            session.add(user)

    await session.commit()
    return hospital


async def get_hospital_donations(
    session: AsyncSession,
    hospital_id: int,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[tuple[Donation, Request, Donor]], int]:
    """Donations answering any of the hospital's requests, newest first."""
    conditions = [Request.hospital_id == hospital_id]
    if status in DONATION_STATUSES:
        conditions.append(Donation.status == status)

    base = (
        select(Donation, Request, Donor)
        .join(Request, Donation.request_id == Request.id)  # type: ignore[arg-type]
        .join(Donor, Donation.donor_id == Donor.id)  # type: ignore[arg-type]
        .where(*conditions)
    )
    total = (
        await session.execute(
            select(func.count())
            .select_from(Donation)
            .join(Request, Donation.request_id == Request.id)  # type: ignore[arg-type]
            .where(*conditions)
        )
    ).scalar_one()
    rows = (
        await session.execute(
            base.order_by(Donation.created_at.desc(), Donation.id.desc())  # type: ignore[attr-defined,union-attr]
            .offset(skip)
            .limit(limit)
        )
    ).all()
    return [(d, r, donor) for d, r, donor in rows], total
