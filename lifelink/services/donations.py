import logging
from collections import Counter
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.config import Settings
from lifelink.errors import (
    ConflictError,
    IneligibleError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from lifelink.models import (
    ACTIVE_REQUEST_STATUSES,
    DONATION_STATUSES,
    TERMINAL_DONATION_STATUSES,
    Donation,
    Donor,
    Request,
)
from lifelink.services.donors import apply_successful_donation, compute_level
from lifelink.services.eligibility import evaluate
from lifelink.services.notifications import NotificationSink, emit
from lifelink.utils.time import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000
FEEDBACK_RESULTS: tuple[str, ...] = ("successful", "failed")


def _check_notes(notes: Optional[str]) -> None:
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")


async def _active_donation(session: AsyncSession, donor_id: int, request_id: int) -> Optional[Donation]:
    result = await session.execute(
        select(Donation).where(
            Donation.donor_id == donor_id,
            Donation.request_id == request_id,
            Donation.status != "cancelled",
        )
    )
    return result.scalars().first()


async def create_donation(
    session: AsyncSession,
    donor_id: int,
    request_id: int,
    quantity: Optional[int] = None,
    notes: Optional[str] = None,
    sink: Optional[NotificationSink] = None,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> Donation:
    """Record a donor's response to a request as a ``pending`` donation.

    Eligibility is re-evaluated here, whatever the matching engine showed
    earlier. The active-pair check is backed by the ``uq_donation_active_pair``
    index, so of two concurrent attempts exactly one insert survives.
    """
    if quantity is None:
        quantity = 1
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    _check_notes(notes)

    donor = await session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor", donor_id)
    request = await session.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    # Reported before eligibility, so a completed response reads as a conflict
    if await _active_donation(session, donor_id, request_id):
        raise ConflictError("Donor has already responded to this request")

    if request.status not in ACTIVE_REQUEST_STATUSES:
        raise IneligibleError(f"Request is {request.status} and no longer accepts donations")

    eligibility = evaluate(donor, request, cfg, now)
    if not eligibility.eligible:
        raise IneligibleError(eligibility.reason)

    donation = Donation(
        donor_id=donor_id,
        request_id=request_id,
        quantity=quantity,
        status="pending",
        notes=notes or "",
    )
    session.add(donation)
    try:
        await session.commit()
    except IntegrityError:
        # Lost the race against a concurrent attempt for the same pair
        await session.rollback()
        raise ConflictError("Donor has already responded to this request") from None
    await session.refresh(donation)

    logger.info("donation_created: id=%s donor=%s request=%s", donation.id, donor_id, request_id)
    await emit(sink, "notify_match", request.hospital_id, donation, request)
    return donation


async def update_status(
    session: AsyncSession,
    donation_id: int,
    new_status: str,
    scheduled_date: Optional[datetime] = None,
    completed_date: Optional[datetime] = None,
    notes: Optional[str] = None,
    sink: Optional[NotificationSink] = None,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> Donation:
    """Move a donation to *new_status*.

    ``completed`` and ``cancelled`` are terminal. Any other move is the
    caller's choice. The write is a compare-and-set on the current status, so
    of two racing transitions out of a non-terminal state only one lands.
    Completing a donation restarts the donor's cooldown in the same commit.
    """
    if new_status not in DONATION_STATUSES:
        raise InvalidTransitionError(f"Invalid donation status: {new_status}")

    donation = await session.get(Donation, donation_id)
    if not donation:
        raise NotFoundError("Donation", donation_id)
    if donation.status in TERMINAL_DONATION_STATUSES:
        raise InvalidTransitionError(f"Donation {donation_id} is already {donation.status}")

    now = as_utc_naive(now or utcnow())
    if scheduled_date is not None:
        scheduled_date = as_utc_naive(scheduled_date)
        if scheduled_date <= now:
            raise InvalidTransitionError("Scheduled date must be in the future")
    if completed_date is not None:
        if new_status != "completed":
            raise InvalidTransitionError("Completed date can only be set when completing a donation")
        completed_date = as_utc_naive(completed_date)
        if completed_date > now:
            raise InvalidTransitionError("Completed date cannot be in the future")
    _check_notes(notes)

    donor: Optional[Donor] = None
    if new_status == "completed":
        donor = await session.get(Donor, donation.donor_id)
        if not donor:
            raise NotFoundError("Donor", donation.donor_id)

    values: dict[str, Any] = {"status": new_status}
    if scheduled_date is not None:
        values["scheduled_date"] = scheduled_date
    if notes is not None:
        values["notes"] = notes
    if new_status == "completed":
        values["completed_date"] = completed_date or now

    previous = donation.status
    result = await session.execute(
        update(Donation)
        .where(
            Donation.id == donation_id,  # type: ignore[arg-type]
            Donation.status.not_in(sorted(TERMINAL_DONATION_STATUSES)),  # type: ignore[attr-defined]
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Another transition reached a terminal state first
        await session.rollback()
        await session.refresh(donation)
        raise InvalidTransitionError(f"Donation {donation_id} is already {donation.status}")

    achievement = None
    if donor is not None:
        achievement = apply_successful_donation(donor, now, cfg)
        session.add(donor)

    await session.commit()
    await session.refresh(donation)

    logger.info("donation_status: id=%s %s -> %s", donation_id, previous, new_status)
    if achievement is not None:
        await emit(sink, "notify_milestone", donation.donor_id, achievement)
    return donation


async def cancel_donation(session: AsyncSession, donation_id: int) -> Donation:
    return await update_status(session, donation_id, "cancelled")


async def cancel_donations_for_request(session: AsyncSession, request_id: int) -> int:
    """Cancel every non-completed donation of a request. The caller commits."""
    result = await session.execute(
        update(Donation)
        .where(
            Donation.request_id == request_id,  # type: ignore[arg-type]
            Donation.status.not_in(sorted(TERMINAL_DONATION_STATUSES)),  # type: ignore[attr-defined]
        )
        .values(status="cancelled")
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def update_donation_feedback(
    session: AsyncSession,
    donation_id: int,
    result: Optional[str] = None,
    notes: Optional[str] = None,
) -> Donation:
    donation = await session.get(Donation, donation_id)
    if not donation:
        raise NotFoundError("Donation", donation_id)
    if result is not None:
        if result not in FEEDBACK_RESULTS:
            raise ValidationError(f"Result must be one of: {', '.join(FEEDBACK_RESULTS)}")
        donation.result = result
    if notes:
        _check_notes(notes)
        donation.notes = notes
    session.add(donation)
    await session.commit()
    return donation


# --------- read helpers ---------


async def get_donation_details(session: AsyncSession, donation_id: int) -> tuple[Donation, Donor, Request]:
    row = (
        await session.execute(
            select(Donation, Donor, Request)
            .join(Donor, Donation.donor_id == Donor.id)  # type: ignore[arg-type]
            .join(Request, Donation.request_id == Request.id)  # type: ignore[arg-type]
            .where(Donation.id == donation_id)
        )
    ).first()
    if row is None:
        raise NotFoundError("Donation", donation_id)
    donation, donor, request = row
    return donation, donor, request


async def get_donation_history(
    session: AsyncSession,
    donor_id: int,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[tuple[Donation, Request]], int]:
    """Newest first. Returns ``([(donation, request), ...], total)``."""
    conditions = [Donation.donor_id == donor_id]
    if status in DONATION_STATUSES:
        conditions.append(Donation.status == status)

    total = (await session.execute(select(func.count()).select_from(Donation).where(*conditions))).scalar_one()
    rows = (
        await session.execute(
            select(Donation, Request)
            .join(Request, Donation.request_id == Request.id)  # type: ignore[arg-type]
            .where(*conditions)
            .order_by(Donation.created_at.desc(), Donation.id.desc())  # type: ignore[attr-defined,union-attr]
            .offset(skip)
            .limit(limit)
        )
    ).all()
    return [(d, r) for d, r in rows], total


async def get_donations_for_request(
    session: AsyncSession,
    request_id: int,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[tuple[Donation, Donor]], int]:
    conditions = [Donation.request_id == request_id]
    if status in DONATION_STATUSES:
        conditions.append(Donation.status == status)

    total = (await session.execute(select(func.count()).select_from(Donation).where(*conditions))).scalar_one()
    rows = (
        await session.execute(
            select(Donation, Donor)
            .join(Donor, Donation.donor_id == Donor.id)  # type: ignore[arg-type]
            .where(*conditions)
            .order_by(Donation.created_at.desc(), Donation.id.desc())  # type: ignore[attr-defined,union-attr]
            .offset(skip)
            .limit(limit)
        )
    ).all()
    return [(d, donor) for d, donor in rows], total


async def get_donor_stats(session: AsyncSession, donor_id: int) -> dict[str, Any]:
    donor = await session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor", donor_id)

    donations = (await session.execute(select(Donation).where(Donation.donor_id == donor_id))).scalars().all()
    by_status = Counter(d.status for d in donations)
    return {
        "total_donations": len(donations),
        "completed_donations": by_status["completed"],
        "pending_donations": by_status["pending"],
        "scheduled_donations": by_status["scheduled"],
        "cancelled_donations": by_status["cancelled"],
        "total_units_donated": sum(d.quantity for d in donations if d.status == "completed"),
        "points": donor.points,
        "level": compute_level(donor.points),
    }
