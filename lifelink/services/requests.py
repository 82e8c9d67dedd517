import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.config import Settings
from lifelink.errors import InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from lifelink.models import (
    ACTIVE_REQUEST_STATUSES,
    ORGAN_TYPES,
    REQUEST_KINDS,
    REQUEST_STATUSES,
    TERMINAL_REQUEST_STATUSES,
    URGENCIES,
    Donation,
    Hospital,
    Request,
)
from lifelink.services.donations import cancel_donations_for_request
from lifelink.services.matching import broadcast_request
from lifelink.services.notifications import NotificationSink
from lifelink.utils.blood import normalize_blood_type
from lifelink.utils.time import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 500


async def get_request(session: AsyncSession, request_id: int, hospital_id: Optional[int] = None) -> Request:
    """Load a request, optionally verifying that *hospital_id* owns it."""
    request = await session.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)
    if hospital_id is not None and request.hospital_id != hospital_id:
        raise PermissionDeniedError("Unauthorized access to this request")
    return request


async def create_request(
    session: AsyncSession,
    hospital_id: int,
    kind: str,
    urgency: str,
    required_by: datetime,
    blood_type: Optional[str] = None,
    organ_type: Optional[str] = None,
    quantity: Optional[int] = None,
    notes: Optional[str] = None,
    sink: Optional[NotificationSink] = None,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> Request:
    """Create a hospital request.

    A blood request carries a blood type and no organ type, an organ request
    the other way round. ``required_by`` must lie strictly in the future.
    With a *sink*, currently matching donors are told about the new request.
    """
    if kind not in REQUEST_KINDS:
        raise ValidationError("Type must be blood or organ")
    if urgency not in URGENCIES:
        raise ValidationError("Urgency must be low, medium, high, or critical")

    if kind == "blood":
        if not blood_type:
            raise ValidationError("Blood type is required for blood donation requests")
        if organ_type:
            raise ValidationError("Blood donation requests cannot specify an organ type")
        canonical = normalize_blood_type(blood_type)
        if canonical is None:
            raise ValidationError(f"Invalid blood type: {blood_type}")
        blood_type = canonical
    else:
        if not organ_type:
            raise ValidationError("Organ type is required for organ donation requests")
        if blood_type:
            raise ValidationError("Organ donation requests cannot specify a blood type")
        if organ_type not in ORGAN_TYPES:
            raise ValidationError(f"Organ type must be one of: {', '.join(ORGAN_TYPES)}")

    if required_by is None:
        raise ValidationError("Required by date is required")
    required_by = as_utc_naive(required_by)
    if required_by <= as_utc_naive(now or utcnow()):
        raise ValidationError("Required date must be in the future")

    if quantity is None:
        quantity = 1
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")

    if not await session.get(Hospital, hospital_id):
        raise NotFoundError("Hospital", hospital_id)

    request = Request(
        hospital_id=hospital_id,
        kind=kind,
        blood_type=blood_type if kind == "blood" else None,
        organ_type=organ_type if kind == "organ" else None,
        urgency=urgency,
        required_by=required_by,
        quantity=quantity,
        notes=notes or "",
    )
    session.add(request)
    await session.commit()
    await session.refresh(request)
    logger.info("request_created: id=%s hospital=%s %s/%s", request.id, hospital_id, request.wanted, urgency)

    if sink is not None:
        await broadcast_request(session, request.id, sink, cfg, now)  # type: ignore[arg-type]
    return request


def _ensure_open(request: Request) -> None:
    if request.status in TERMINAL_REQUEST_STATUSES:
        raise InvalidTransitionError(f"Request {request.id} is already {request.status}")


async def cancel_request(session: AsyncSession, request_id: int, hospital_id: Optional[int] = None) -> int:
    """Cancel a request together with its non-completed donations.

    Both writes share one commit. Returns how many donations were cancelled.
    """
    request = await get_request(session, request_id, hospital_id)
    _ensure_open(request)
    cascaded = await cancel_donations_for_request(session, request_id)
    request.status = "cancelled"
    session.add(request)
    await session.commit()
    logger.info("request_cancelled: id=%s donations_cancelled=%d", request_id, cascaded)
    return cascaded


async def update_request_status(
    session: AsyncSession,
    request_id: int,
    status: str,
    hospital_id: Optional[int] = None,
) -> Request:
    """Move a request to *status*. ``completed`` and ``cancelled`` are final."""
    if status not in REQUEST_STATUSES:
        raise ValidationError("Valid status is required")
    if status == "cancelled":
        await cancel_request(session, request_id, hospital_id)
        return await get_request(session, request_id)

    request = await get_request(session, request_id, hospital_id)
    _ensure_open(request)
    request.status = status
    session.add(request)
    await session.commit()
    return request


# --------- listings ---------


async def _page(
    session: AsyncSession, conditions: list[Any], skip: int, limit: int
) -> tuple[list[Request], int]:
    total = (await session.execute(select(func.count()).select_from(Request).where(*conditions))).scalar_one()
    result = await session.execute(
        select(Request)
        .where(*conditions)
        .order_by(Request.created_at.desc(), Request.id.desc())  # type: ignore[attr-defined,union-attr]
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def list_active_requests(
    session: AsyncSession,
    kind: Optional[str] = None,
    urgency: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[Request], int]:
    """Requests donors can browse. Unknown filter values are ignored."""
    conditions: list[Any] = [Request.status.in_(ACTIVE_REQUEST_STATUSES)]  # type: ignore[attr-defined]
    if kind in REQUEST_KINDS:
        conditions.append(Request.kind == kind)
    if urgency in URGENCIES:
        conditions.append(Request.urgency == urgency)
    return await _page(session, conditions, skip, limit)


async def get_hospital_requests(
    session: AsyncSession,
    hospital_id: int,
    status: Optional[str] = None,
    kind: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[Request], int]:
    conditions: list[Any] = [Request.hospital_id == hospital_id]
    if status in REQUEST_STATUSES:
        conditions.append(Request.status == status)
    if kind in REQUEST_KINDS:
        conditions.append(Request.kind == kind)
    return await _page(session, conditions, skip, limit)


async def get_request_details(
    session: AsyncSession, request_id: int, hospital_id: Optional[int] = None
) -> dict[str, Any]:
    request = await get_request(session, request_id, hospital_id)
    donations = (
        await session.execute(
            select(Donation).where(Donation.request_id == request_id).order_by(Donation.id)  # type: ignore[arg-type]
        )
    ).scalars().all()
    return {"request": request, "donations": list(donations), "donation_count": len(donations)}
