import re
from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lifelink.config import Settings, settings
from lifelink.errors import NotFoundError, ValidationError
from lifelink.models import GENDERS, Donor, User
from lifelink.services.notifications import Achievement
from lifelink.utils.blood import normalize_blood_type
from lifelink.utils.time import utcnow

_PHONE_RE = re.compile(r"^[0-9]{10}$")


async def get_donor(session: AsyncSession, donor_id: int) -> Donor:
    donor = await session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor", donor_id)
    return donor


def clean_donor_fields(
    phone_number: Optional[str] = None,
    gender: Optional[str] = None,
    date_of_birth: Optional[date] = None,
    blood_type: Optional[str] = None,
    today: Optional[date] = None,
) -> dict:
    """Validate donor profile fields, returning only the ones that were given."""
    cleaned: dict = {}
    if phone_number is not None:
        if not _PHONE_RE.match(phone_number):
            raise ValidationError("Phone number must be 10 digits long")
        cleaned["phone_number"] = phone_number
    if gender is not None:
        if gender not in GENDERS:
            raise ValidationError(f"Gender must be one of: {', '.join(GENDERS)}")
        cleaned["gender"] = gender
    if date_of_birth is not None:
        if date_of_birth > (today or utcnow().date()):
            raise ValidationError("Date of birth must be in the past")
        cleaned["date_of_birth"] = date_of_birth
    if blood_type is not None:
        canonical = normalize_blood_type(blood_type)
        if canonical is None:
            raise ValidationError(f"Invalid blood type: {blood_type}")
        cleaned["blood_type"] = canonical
    return cleaned


async def update_donor_profile(
    session: AsyncSession,
    donor_id: int,
    full_name: Optional[str] = None,
    phone_number: Optional[str] = None,
    gender: Optional[str] = None,
    date_of_birth: Optional[date] = None,
    blood_type: Optional[str] = None,
    city: Optional[str] = None,
    region: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> Donor:
    """Apply the fields that were passed; ``None`` means "leave unchanged"."""
    donor = await get_donor(session, donor_id)
    updates = clean_donor_fields(phone_number, gender, date_of_birth, blood_type)
    for key, value in {"city": city, "region": region, "latitude": latitude, "longitude": longitude}.items():
        if value is not None:
            updates[key] = value

    for key, value in updates.items():
        setattr(donor, key, value)
    session.add(donor)

    if full_name:
        user = await session.get(User, donor_id)
        if user:
            user.full_name = full_name
            session.add(user)

    await session.commit()
    return donor


async def update_availability(session: AsyncSession, donor_id: int, is_available: bool) -> Donor:
    if not isinstance(is_available, bool):
        raise ValidationError("is_available must be a boolean value")
    donor = await get_donor(session, donor_id)
    donor.is_available = is_available
    session.add(donor)
    await session.commit()
    return donor


# ======== Gamification: points, levels, milestones ========

_LEVELS: list[tuple[int, str]] = [
    (0, "Bronze"),
    (400, "Silver"),
    (900, "Gold"),
    (1500, "Platinum"),
]


def compute_level(points: int) -> str:
    """Level name for the given number of points."""
    level = _LEVELS[0][1]
    for threshold, name in _LEVELS:
        if points >= threshold:
            level = name
        else:
            break
    return level


def milestone_title(count: int) -> str:
    return "First Donation" if count == 1 else f"{count} Donations"


def apply_successful_donation(
    donor: Donor,
    when: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
) -> Optional[Achievement]:
    """Book a completed donation on the donor.

    * restarts the cooldown clock (``last_donation_date``)
    * bumps ``total_donations`` and ``points``

    Returns the milestone reached by this donation, if any. The caller commits.
    """
    cfg = cfg or settings
    donor.last_donation_date = when or utcnow()
    donor.total_donations = (donor.total_donations or 0) + 1
    donor.points = (donor.points or 0) + cfg.POINTS_PER_DONATION

    if donor.total_donations in cfg.MILESTONES:
        return Achievement(
            id=donor.total_donations,
            title=milestone_title(donor.total_donations),
            type="donation_count",
            points=donor.points,
        )
    return None
