"""Ranks donors against a request and requests against a donor.

Everything here is a read-only query: no donor, request or donation is
touched. Eligibility is evaluated at read time only; the authoritative check
runs again when a donation is created.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from lifelink.config import Settings, settings
from lifelink.errors import NotFoundError
from lifelink.models import ACTIVE_REQUEST_STATUSES, Donation, Donor, Hospital, Request
from lifelink.services.eligibility import evaluate
from lifelink.services.notifications import NotificationSink, emit
from lifelink.utils.blood import is_compatible
from lifelink.utils.geo import Location, calculate_distance, location_score
from lifelink.utils.time import utcnow

logger = logging.getLogger(__name__)


class DonorMatch(NamedTuple):
    donor: Donor
    score: float
    reason: str


class RequestMatch(NamedTuple):
    request: Request
    score: float
    compatibility: dict[str, bool]


def is_exact_match(donor: Donor, request: Request) -> bool:
    return request.kind == "blood" and donor.blood_type is not None and donor.blood_type == request.blood_type


def proximity_score(donor_location: Location, origin: Optional[Location], cfg: Settings) -> float:
    if origin is None or not (origin.has_coordinates and donor_location.has_coordinates):
        return cfg.NEUTRAL_LOCATION_SCORE
    distance = calculate_distance(donor_location, origin)
    return location_score(distance, cfg.PROXIMITY_MAX_DISTANCE_KM)


def rank_donors(
    request: Request,
    donor_pool: Iterable[Donor],
    responded_donor_ids: Iterable[int] = (),
    origin: Optional[Location] = None,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[DonorMatch]:
    """Score eligible donors for *request*, best first.

    Score = (base + exact-type bonus + proximity) / 2, where proximity is
    0..100 against *origin* (the hospital) or neutral without coordinates.
    """
    cfg = cfg or settings
    now = now or utcnow()
    responded = set(responded_donor_ids)

    matches: list[DonorMatch] = []
    for donor in donor_pool:
        if donor.id in responded:
            continue
        eligibility = evaluate(donor, request, cfg, now)
        if not eligibility.eligible:
            continue

        score = cfg.BASE_MATCH_SCORE
        if is_exact_match(donor, request):
            score += cfg.EXACT_MATCH_BONUS
        score = (score + proximity_score(donor.location, origin, cfg)) / 2

        matches.append(DonorMatch(donor, score, eligibility.reason))

    # sorted() is stable, ties keep pool order
    return sorted(matches, key=lambda m: m.score, reverse=True)


def rank_requests(
    donor: Donor,
    request_pool: Iterable[Request],
    responded_request_ids: Iterable[int] = (),
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[RequestMatch]:
    """Score open requests *donor* could answer, best first."""
    cfg = cfg or settings
    now = now or utcnow()
    responded = set(responded_request_ids)

    matches: list[RequestMatch] = []
    for request in request_pool:
        if request.status not in ACTIVE_REQUEST_STATUSES or request.id in responded:
            continue
        if not evaluate(donor, request, cfg, now).eligible:
            continue

        exact = is_exact_match(donor, request)
        score = cfg.BASE_MATCH_SCORE
        if exact:
            score += cfg.EXACT_MATCH_BONUS
        score += cfg.URGENCY_BONUS.get(request.urgency, 0.0)

        matches.append(RequestMatch(request, score, {"blood_type_match": exact, "eligible": True}))

    return sorted(matches, key=lambda m: m.score, reverse=True)


# --------- queries ---------


async def _hospital_location(session: AsyncSession, hospital_id: int) -> Optional[Location]:
    hospital = await session.get(Hospital, hospital_id)
    return hospital.location if hospital else None


async def find_candidate_donors(
    session: AsyncSession,
    request_id: int,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[DonorMatch]:
    request = await session.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    donors = (
        await session.execute(select(Donor).where(Donor.is_available == True))  # noqa: E712
    ).scalars().all()
    responded = (
        await session.execute(
            select(Donation.donor_id).where(Donation.request_id == request_id, Donation.status != "cancelled")
        )
    ).scalars().all()
    origin = await _hospital_location(session, request.hospital_id)

    return rank_donors(request, donors, responded, origin, cfg, now)


async def find_candidate_requests(
    session: AsyncSession,
    donor_id: int,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[RequestMatch]:
    donor = await session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor", donor_id)

    requests = (
        await session.execute(
            select(Request)
            .where(Request.status.in_(ACTIVE_REQUEST_STATUSES))  # type: ignore[attr-defined]
            .order_by(Request.created_at.desc(), Request.id.desc())  # type: ignore[attr-defined,union-attr]
        )
    ).scalars().all()
    responded = (
        await session.execute(
            select(Donation.request_id).where(Donation.donor_id == donor_id, Donation.status != "cancelled")
        )
    ).scalars().all()

    return rank_requests(donor, requests, responded, cfg, now)


async def matching_analysis(
    session: AsyncSession,
    donor_id: int,
    request_id: int,
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Explain why a donor does or doesn't fit a request."""
    donor = await session.get(Donor, donor_id)
    if not donor:
        raise NotFoundError("Donor", donor_id)
    request = await session.get(Request, request_id)
    if not request:
        raise NotFoundError("Request", request_id)

    eligibility = evaluate(donor, request, cfg, now)
    return {
        "donor": {
            "id": donor.id,
            "blood_type": donor.blood_type,
            "is_available": donor.is_available,
            "last_donation_date": donor.last_donation_date,
        },
        "request": {
            "id": request.id,
            "kind": request.kind,
            "blood_type": request.blood_type,
            "organ_type": request.organ_type,
            "urgency": request.urgency,
        },
        "compatibility": {
            "blood_type_match": (
                is_compatible(donor.blood_type, request.blood_type) if request.kind == "blood" else None
            ),
            "eligible": eligibility.eligible,
            "reason": eligibility.reason,
        },
    }


async def broadcast_request(
    session: AsyncSession,
    request_id: int,
    sink: Optional[NotificationSink],
    cfg: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[int]:
    """Announce a request to every donor currently matching it."""
    matches = await find_candidate_donors(session, request_id, cfg, now)
    donor_ids = [m.donor.id for m in matches if m.donor.id is not None]
    request = await session.get(Request, request_id)
    await emit(sink, "notify_request_broadcast", donor_ids, request)
    logger.info("request_broadcast: request=%s donors=%d", request_id, len(donor_ids))
    return donor_ids
