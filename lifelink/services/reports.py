import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.models import Donation, Donor, Request, User
from lifelink.services.hospitals import get_hospital


async def export_hospital_donations(session: AsyncSession, hospital_id: int, file_path: str) -> str:
    """Export every donation against the hospital's requests to Excel."""
    await get_hospital(session, hospital_id)

    rows = (
        await session.execute(
            select(Donation, Request, Donor, User)
            .join(Request, Donation.request_id == Request.id)  # type: ignore[arg-type]
            .join(Donor, Donation.donor_id == Donor.id)  # type: ignore[arg-type]
            .join(User, Donor.id == User.id)  # type: ignore[arg-type]
            .where(Request.hospital_id == hospital_id)
            .order_by(Donation.id)  # type: ignore[arg-type]
        )
    ).all()

    records = [
        {
            "Donation": donation.id,
            "Request": request.id,
            "Wanted": request.wanted,
            "Urgency": request.urgency,
            "Donor": user.full_name,
            "Blood type": donor.blood_type,
            "Phone": donor.phone_number,
            "Status": donation.status,
            "Quantity": donation.quantity,
            "Scheduled": donation.scheduled_date,
            "Completed": donation.completed_date,
        }
        for donation, request, donor, user in rows
    ]
    columns = ["Donation", "Request", "Wanted", "Urgency", "Donor", "Blood type", "Phone",
               "Status", "Quantity", "Scheduled", "Completed"]
    pd.DataFrame(records, columns=columns).to_excel(file_path, index=False)
    return file_path


async def export_donors(session: AsyncSession, file_path: str) -> str:
    """Export the donor table with contact and gamification fields."""
    rows = (
        await session.execute(
            select(Donor, User).join(User, Donor.id == User.id).order_by(Donor.id)  # type: ignore[arg-type]
        )
    ).all()

    records = [
        {
            "Name": user.full_name,
            "Email": user.email,
            "Phone": donor.phone_number,
            "Blood type": donor.blood_type,
            "Available": donor.is_available,
            "Last donation": donor.last_donation_date,
            "City": donor.city,
            "Region": donor.region,
            "Donations": donor.total_donations,
            "Points": donor.points,
        }
        for donor, user in rows
    ]
    columns = ["Name", "Email", "Phone", "Blood type", "Available", "Last donation",
               "City", "Region", "Donations", "Points"]
    pd.DataFrame(records, columns=columns).to_excel(file_path, index=False)
    return file_path
