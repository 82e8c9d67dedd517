import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from lifelink.errors import (
    ConflictError,
    IneligibleError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from lifelink.models import DONATION_STATUSES, Donation, Donor
from lifelink.services.donations import (
    cancel_donation,
    create_donation,
    get_donation_details,
    get_donation_history,
    get_donations_for_request,
    get_donor_stats,
    update_donation_feedback,
    update_status,
)
from lifelink.services.matching import find_candidate_donors
from lifelink.services.requests import cancel_request
from lifelink.utils.time import utcnow


async def test_blood_request_end_to_end(session, sink, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital, urgency="critical", blood_type="O+", quantity=2)
    d1 = await make_donor("O+")
    d2 = await make_donor("A-")

    matches = await find_candidate_donors(session, request.id)
    assert [m.donor.id for m in matches] == [d1.id]
    assert d2.id not in [m.donor.id for m in matches]

    donation = await create_donation(session, d1.id, request.id, sink=sink)
    assert donation.status == "pending"
    assert sink.of("match") == [("match", hospital.id, donation.id, request.id)]

    now = utcnow()
    done = await update_status(session, donation.id, "completed", sink=sink, now=now)
    assert done.status == "completed"
    assert done.completed_date == now

    donor = await session.get(Donor, d1.id)
    assert donor.last_donation_date == now
    assert donor.total_donations == 1

    with pytest.raises(ConflictError):
        await create_donation(session, d1.id, request.id)


async def test_create_defaults(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()

    donation = await create_donation(session, donor.id, request.id)

    assert donation.id is not None
    assert donation.quantity == 1
    assert donation.status == "pending"
    assert donation.scheduled_date is None and donation.completed_date is None


async def test_second_active_response_conflicts(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    await create_donation(session, donor.id, request.id)

    with pytest.raises(ConflictError):
        await create_donation(session, donor.id, request.id)

    rows = (await session.execute(select(Donation))).scalars().all()
    assert len(rows) == 1


async def test_cancelled_response_does_not_block(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    first = await create_donation(session, donor.id, request.id)
    await cancel_donation(session, first.id)

    second = await create_donation(session, donor.id, request.id)

    assert second.id != first.id
    assert second.status == "pending"


async def test_concurrent_responses_leave_one_donation(session_pool, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()

    async with session_pool() as s1, session_pool() as s2:
        results = await asyncio.gather(
            create_donation(s1, donor.id, request.id),
            create_donation(s2, donor.id, request.id),
            return_exceptions=True,
        )

    created = [r for r in results if isinstance(r, Donation)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 1

    async with session_pool() as s:
        rows = (await s.execute(select(Donation).where(Donation.request_id == request.id))).scalars().all()
    assert len(rows) == 1

async def test_racing_completions_land_once(session_pool, sink, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    async with session_pool() as s:
        donation = await create_donation(s, donor.id, request.id)

    async with session_pool() as s1, session_pool() as s2:
        results = await asyncio.gather(
            update_status(s1, donation.id, "completed", sink=sink),
            update_status(s2, donation.id, "completed", sink=sink),
            return_exceptions=True,
        )

    assert len([r for r in results if isinstance(r, Donation)]) == 1
    assert len([r for r in results if isinstance(r, InvalidTransitionError)]) == 1
    assert sink.of("milestone") == [("milestone", donor.id, "First Donation")]

    async with session_pool() as s:
        stored = await s.get(Donor, donor.id)
    assert stored.total_donations == 1
    assert stored.points == 100


async def test_racing_complete_and_cancel_stay_consistent(session_pool, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    async with session_pool() as s:
        donation = await create_donation(s, donor.id, request.id)

    async with session_pool() as s1, session_pool() as s2:
        results = await asyncio.gather(
            update_status(s1, donation.id, "completed"),
            update_status(s2, donation.id, "cancelled"),
            return_exceptions=True,
        )

    winners = [r for r in results if isinstance(r, Donation)]
    assert len(winners) == 1
    assert len([r for r in results if isinstance(r, InvalidTransitionError)]) == 1

    async with session_pool() as s:
        stored = await s.get(Donation, donation.id)
        stored_donor = await s.get(Donor, donor.id)
    assert stored.status == winners[0].status
    if stored.status == "completed":
        assert stored_donor.last_donation_date is not None
        assert stored_donor.total_donations == 1
    else:
        assert stored_donor.last_donation_date is None
        assert stored_donor.total_donations == 0
        assert stored.completed_date is None


async def test_ineligible_donor_gets_reason(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital, blood_type="O+")
    donor = await make_donor("A-")

    with pytest.raises(IneligibleError) as exc:
        await create_donation(session, donor.id, request.id)

    assert exc.value.reason == "Donor blood type A- is not compatible with request for O+"


async def test_cooldown_blocks_next_blood_donation(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    donor = await make_donor("O-", last_donation_date=utcnow() - timedelta(days=20))
    request = await make_request(hospital, blood_type="AB-")

    with pytest.raises(IneligibleError) as exc:
        await create_donation(session, donor.id, request.id)
    assert exc.value.reason == "Must wait 36 more days before donating again"

    organ = await make_request(hospital, kind="organ", organ_type="kidney")
    donation = await create_donation(session, donor.id, organ.id)
    assert donation.status == "pending"


async def test_completion_restarts_cooldown(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    donor = await make_donor("O+")
    first = await make_request(hospital)
    second = await make_request(hospital)

    donation = await create_donation(session, donor.id, first.id)
    await update_status(session, donation.id, "completed")

    with pytest.raises(IneligibleError) as exc:
        await create_donation(session, donor.id, second.id)
    assert exc.value.reason.startswith("Must wait 56 more days")


async def test_inactive_request_rejects_responses(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    await cancel_request(session, request.id)

    with pytest.raises(IneligibleError) as exc:
        await create_donation(session, donor.id, request.id)
    assert "cancelled" in exc.value.reason


async def test_create_not_found(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()

    with pytest.raises(NotFoundError):
        await create_donation(session, 9999, request.id)
    with pytest.raises(NotFoundError):
        await create_donation(session, donor.id, 9999)


async def test_create_validates_input(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()

    with pytest.raises(ValidationError):
        await create_donation(session, donor.id, request.id, quantity=0)
    with pytest.raises(ValidationError):
        await create_donation(session, donor.id, request.id, notes="x" * 1001)


async def test_broken_sink_does_not_undo_donation(session, broken_sink, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()

    donation = await create_donation(session, donor.id, request.id, sink=broken_sink)
    await update_status(session, donation.id, "completed", sink=broken_sink)

    stored = await session.get(Donation, donation.id)
    assert stored.status == "completed"


# --------- status transitions ---------


@pytest.mark.parametrize("terminal", ["completed", "cancelled"])
async def test_terminal_states_are_final(session, make_hospital, make_donor, make_request, terminal):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    await update_status(session, donation.id, terminal)

    for target in DONATION_STATUSES:
        with pytest.raises(InvalidTransitionError):
            await update_status(session, donation.id, target)

    stored = await session.get(Donation, donation.id)
    assert stored.status == terminal


async def test_cancel_does_not_touch_donor(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)

    await cancel_donation(session, donation.id)

    donor = await session.get(Donor, donor.id)
    assert donor.last_donation_date is None
    assert donor.total_donations == 0


async def test_schedule_requires_future_date(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    now = utcnow()

    with pytest.raises(InvalidTransitionError):
        await update_status(session, donation.id, "scheduled", scheduled_date=now - timedelta(hours=1), now=now)
    with pytest.raises(InvalidTransitionError):
        await update_status(session, donation.id, "scheduled", scheduled_date=now, now=now)

    when = now + timedelta(days=2)
    scheduled = await update_status(session, donation.id, "scheduled", scheduled_date=when, now=now)
    assert scheduled.status == "scheduled"
    assert scheduled.scheduled_date == when

    # non-terminal moves are free, including back to pending
    back = await update_status(session, donation.id, "pending")
    assert back.status == "pending"


async def test_completed_date_cannot_be_in_future(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    now = utcnow()

    with pytest.raises(InvalidTransitionError):
        await update_status(session, donation.id, "completed", completed_date=now + timedelta(days=1), now=now)

    stored = await session.get(Donation, donation.id)
    assert stored.status == "pending"

    earlier = now - timedelta(hours=3)
    done = await update_status(session, donation.id, "completed", completed_date=earlier, now=now)
    assert done.completed_date == earlier

async def test_completed_date_only_with_completion(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    earlier = utcnow() - timedelta(hours=1)

    for target in ("cancelled", "scheduled", "pending"):
        with pytest.raises(InvalidTransitionError):
            await update_status(
                session, donation.id, target, scheduled_date=utcnow() + timedelta(days=1), completed_date=earlier
            )

    stored = await session.get(Donation, donation.id)
    assert stored.status == "pending"
    assert stored.completed_date is None


async def test_completion_dates_round_trip(session, session_pool, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    now = utcnow()

    await update_status(session, donation.id, "completed", now=now)

    async with session_pool() as fresh:
        stored = await fresh.get(Donation, donation.id)
        stored_donor = await fresh.get(Donor, donor.id)
    assert stored.completed_date == now
    assert stored.completed_date.tzinfo is None
    assert stored_donor.last_donation_date == now
    assert stored.created_at <= stored.updated_at


async def test_aware_now_is_normalised(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)
    now = datetime.now(timezone(timedelta(hours=-5)))

    scheduled = await update_status(session, donation.id, "scheduled", scheduled_date=now + timedelta(days=1), now=now)
    assert scheduled.scheduled_date.tzinfo is None

    await update_status(session, donation.id, "completed", now=now)
    stored = await session.get(Donor, donor.id)
    assert stored.last_donation_date == now.astimezone(timezone.utc).replace(tzinfo=None)


async def test_unknown_status_and_missing_donation(session):
    with pytest.raises(InvalidTransitionError):
        await update_status(session, 1, "approved")
    with pytest.raises(NotFoundError):
        await update_status(session, 9999, "scheduled")


async def test_milestones_are_announced_once(session, sink, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    donor = await make_donor("O+")
    first = await make_request(hospital, kind="organ", organ_type="kidney")
    second = await make_request(hospital, kind="organ", organ_type="cornea")

    for request in (first, second):
        donation = await create_donation(session, donor.id, request.id)
        await update_status(session, donation.id, "completed", sink=sink)

    assert sink.of("milestone") == [("milestone", donor.id, "First Donation")]
    stored = await session.get(Donor, donor.id)
    assert stored.total_donations == 2
    assert stored.points == 200


# --------- feedback and read helpers ---------


async def test_feedback(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    request = await make_request(hospital)
    donor = await make_donor()
    donation = await create_donation(session, donor.id, request.id)

    updated = await update_donation_feedback(session, donation.id, result="successful", notes="went well")
    assert updated.result == "successful"
    assert updated.notes == "went well"

    with pytest.raises(ValidationError):
        await update_donation_feedback(session, donation.id, result="maybe")
    with pytest.raises(NotFoundError):
        await update_donation_feedback(session, 9999, result="failed")


async def test_details_history_and_stats(session, make_hospital, make_donor, make_request):
    hospital = await make_hospital()
    donor = await make_donor("O+")
    other = await make_donor("O-")
    first = await make_request(hospital, kind="organ", organ_type="liver")
    second = await make_request(hospital, blood_type="AB+")

    pending = await create_donation(session, donor.id, second.id)
    done = await create_donation(session, donor.id, first.id, quantity=2)
    await update_status(session, done.id, "completed")
    await create_donation(session, other.id, second.id)

    donation, d, r = await get_donation_details(session, pending.id)
    assert (donation.id, d.id, r.id) == (pending.id, donor.id, second.id)
    with pytest.raises(NotFoundError):
        await get_donation_details(session, 9999)

    history, total = await get_donation_history(session, donor.id)
    assert total == 2
    assert [dn.id for dn, _ in history] == [done.id, pending.id]

    completed, total = await get_donation_history(session, donor.id, status="completed")
    assert total == 1
    assert completed[0][1].id == first.id

    responders, total = await get_donations_for_request(session, second.id)
    assert total == 2
    assert {dn.id for _, dn in responders} == {donor.id, other.id}

    page, total = await get_donations_for_request(session, second.id, skip=1, limit=1)
    assert total == 2 and len(page) == 1

    stats = await get_donor_stats(session, donor.id)
    assert stats["total_donations"] == 2
    assert stats["completed_donations"] == 1
    assert stats["pending_donations"] == 1
    assert stats["total_units_donated"] == 2
    assert stats["points"] == 100
    assert stats["level"] == "Bronze"
