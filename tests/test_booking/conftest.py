from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import NullPool

from shared.database import get_engine, get_session

from booking_service import lifecycle
from booking_service.db import Base, get_db
from booking_service.main import app
from booking_service.routes import get_redis
from booking_service.schemas import CreateBookingRequest


def booking_payload(**overrides) -> dict:
    payload = {
        "serviceType": "Phone Repair",
        "deviceInfo": {"brand": "Acme", "model": "X1", "issue": "Cracked screen"},
        "description": "Screen cracked after a fall",
        "urgency": "normal",
        "preferredDate": (date.today() + timedelta(days=3)).isoformat(),
        "preferredTimeSlot": "morning",
        "address": {"street": "12 Main St", "city": "Springfield", "zipCode": "12345"},
        "phone": "+1 555 0100",
        "estimatedCost": 1200,
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def payload():
    return booking_payload


@pytest.fixture
def new_booking(db, customer):
    async def _create(actor=None, **overrides):
        data = CreateBookingRequest(**booking_payload(**overrides))
        booking, _ = await lifecycle.create_booking(db, actor or customer, data)
        return booking

    return _create


@pytest_asyncio.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
