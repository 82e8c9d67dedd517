import itertools
from datetime import date, timedelta

import pytest
import pytest_asyncio

from lifelink.config import Settings
from lifelink.db import init_db, make_engine, make_session_factory
from lifelink.services.requests import create_request
from lifelink.services.users import register_user
from lifelink.utils.time import utcnow


class RecordingSink:
    def __init__(self):
        self.calls = []

    async def notify_match(self, hospital_user_id, donation, request):
        self.calls.append(("match", hospital_user_id, donation.id, request.id))

    async def notify_request_broadcast(self, donor_ids, request):
        self.calls.append(("request", list(donor_ids), request.id))

    async def notify_milestone(self, user_id, achievement):
        self.calls.append(("milestone", user_id, achievement.title))

    def of(self, kind):
        return [c for c in self.calls if c[0] == kind]


class BrokenSink:
    async def notify_match(self, *args):
        raise RuntimeError("smtp down")

    async def notify_request_broadcast(self, *args):
        raise RuntimeError("smtp down")

    async def notify_milestone(self, *args):
        raise RuntimeError("smtp down")


@pytest.fixture
def cfg(tmp_path):
    return Settings(DB_PATH=tmp_path / "lifelink.db", DATABASE_URL=None, LOG_DIR=None)


@pytest_asyncio.fixture
async def engine(cfg):
    engine = make_engine(cfg)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_pool(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_pool):
    async with session_pool() as session:
        yield session


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def broken_sink():
    return BrokenSink()


@pytest.fixture
def make_donor(session):
    counter = itertools.count(1)

    async def _make(blood_type="O+", last_donation_date=None, **fields):
        n = next(counter)
        fields.setdefault("date_of_birth", date(1990, 5, 17))
        _, donor = await register_user(
            session, f"Donor {n}", f"donor{n}@example.com", "donor", blood_type=blood_type, **fields
        )
        if last_donation_date is not None:
            donor.last_donation_date = last_donation_date
            session.add(donor)
            await session.commit()
        return donor

    return _make


@pytest.fixture
def make_hospital(session):
    counter = itertools.count(1)

    async def _make(**fields):
        n = next(counter)
        fields.setdefault("hospital_name", f"City Hospital {n}")
        fields.setdefault("license_number", f"LIC-{n:04d}")
        _, hospital = await register_user(session, f"Hospital Admin {n}", f"hospital{n}@example.com", "hospital", **fields)
        return hospital

    return _make


@pytest.fixture
def make_request(session):
    async def _make(hospital, kind="blood", urgency="high", blood_type="O+", organ_type=None, **kwargs):
        kwargs.setdefault("required_by", utcnow() + timedelta(days=7))
        return await create_request(
            session,
            hospital.id,
            kind,
            urgency,
            blood_type=blood_type if kind == "blood" else None,
            organ_type=organ_type,
            **kwargs,
        )

    return _make
