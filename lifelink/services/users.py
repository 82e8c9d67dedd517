from typing import Any, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.errors import ConflictError, NotFoundError, ValidationError
from lifelink.models import ROLES, Donor, Hospital, User
from lifelink.services.donors import clean_donor_fields

Profile = Union[Donor, Hospital, None]

_DONOR_LOCATION_FIELDS = {"city", "region", "latitude", "longitude", "is_available"}
_HOSPITAL_FIELDS = {"hospital_name", "license_number", "contact_number", "city", "region", "latitude", "longitude"}


def _build_payload(role: str, user_id: int, payload: dict[str, Any]) -> Profile:
    if role == "donor":
        unknown = set(payload) - _DONOR_LOCATION_FIELDS - {"phone_number", "gender", "date_of_birth", "blood_type"}
        if unknown:
            raise ValidationError(f"Unknown donor fields: {', '.join(sorted(unknown))}")
        fields = clean_donor_fields(
            payload.get("phone_number"),
            payload.get("gender"),
            payload.get("date_of_birth"),
            payload.get("blood_type"),
        )
        fields.update({k: v for k, v in payload.items() if k in _DONOR_LOCATION_FIELDS})
        return Donor(id=user_id, **fields)

    if role == "hospital":
        unknown = set(payload) - _HOSPITAL_FIELDS
        if unknown:
            raise ValidationError(f"Unknown hospital fields: {', '.join(sorted(unknown))}")
        missing = {"hospital_name", "license_number"} - {k for k, v in payload.items() if v}
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(sorted(missing)))
        return Hospital(id=user_id, **payload)

    if payload:
        raise ValidationError("Admins have no profile fields")
    return None


async def register_user(
    session: AsyncSession,
    full_name: str,
    email: str,
    role: str = "donor",
    **payload: Any,
) -> tuple[User, Profile]:
    """Create a user and the profile row matching its role.

    Credentials are handled by the identity layer; this only records who the
    user is and what role-specific data they carry.
    """
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
    if not full_name or not full_name.strip():
        raise ValidationError("Full name is required")
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Invalid email address")

    existing = (await session.execute(select(User).where(User.email == email))).scalars().first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(full_name=full_name.strip(), email=email, role=role)
    session.add(user)
    try:
        await session.flush()
        profile = _build_payload(role, user.id, payload)  # type: ignore[arg-type]
        if profile is not None:
            session.add(profile)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Email already registered") from None
    except ValidationError:
        await session.rollback()
        raise

    await session.refresh(user)
    if profile is not None:
        await session.refresh(profile)
    return user, profile


async def get_profile(session: AsyncSession, user_id: int) -> tuple[User, Profile]:
    user = await session.get(User, user_id)
    if not user:
        raise NotFoundError("User", user_id)

    profile: Optional[Union[Donor, Hospital]] = None
    if user.role == "donor":
        profile = await session.get(Donor, user_id)
    elif user.role == "hospital":
        profile = await session.get(Hospital, user_id)
    return user, profile
