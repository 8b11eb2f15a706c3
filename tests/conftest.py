import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

os.environ.setdefault("JWT_SECRET", "test-secret-for-unit-tests-minimum-32-chars")
os.environ["PAYOUT_API_KEY"] = ""  # Force payout mock mode in tests
os.environ["NOTIFICATION_API_URL"] = ""  # Push notifications in dev mode
os.environ["PAYOUT_WEBHOOK_SECRET"] = "whsec-test-secret-0123456789"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from opa.auth.service import create_access_token
from opa.database import Base, get_db
from opa.main import app
from opa.models.booking import Booking
from opa.models.enums import ActorRole, BookingStatus, ProviderType
from opa.services import booking_lifecycle
from opa.utils.money import Money

# Use SQLite for tests (in-memory, one shared connection)
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
test_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with test_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    # Reset rate limiter storage between tests to avoid 429 errors
    from opa.utils.rate_limit import limiter
    if hasattr(limiter, "_limiter") and hasattr(limiter._limiter, "_storage"):
        limiter._limiter._storage.reset()
    elif hasattr(limiter, "reset"):
        limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def renter_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_booking(
    renter_id: uuid.UUID,
    owner_id: uuid.UUID,
    gross: str = "135.00",
    pickup_in: timedelta = timedelta(days=3),
    duration: timedelta = timedelta(days=2),
    now: datetime | None = None,
) -> Booking:
    """A pending booking, not yet added to any session."""
    now = now or utcnow()
    pickup_at = now + pickup_in
    return booking_lifecycle.new_booking(
        renter_id=renter_id,
        provider_id=owner_id,
        provider_type=ProviderType.OWNER,
        vehicle_id=uuid.uuid4(),
        pickup_at=pickup_at,
        dropoff_at=pickup_at + duration,
        gross=Money.from_major(gross),
        now=now,
    )


async def add_completed_booking(
    db: AsyncSession, renter_id: uuid.UUID, owner_id: uuid.UUID, gross: str, completed_at: datetime | None = None
) -> Booking:
    completed_at = completed_at or utcnow()
    created_at = completed_at - timedelta(days=5)
    booking = build_booking(
        renter_id, owner_id, gross=gross, pickup_in=timedelta(days=2), duration=timedelta(days=2), now=created_at
    )
    booking_lifecycle.transition(booking, owner_id, ActorRole.PROVIDER, BookingStatus.ACTIVE, created_at + timedelta(hours=1))
    booking_lifecycle.transition(booking, owner_id, ActorRole.PROVIDER, BookingStatus.COMPLETED, completed_at)
    db.add(booking)
    await db.flush()
    return booking


def actor_token(actor_id: uuid.UUID) -> str:
    return create_access_token(str(actor_id))


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
