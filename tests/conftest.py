import os
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Add the app directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.database import Base, get_db, make_engine, make_session_factory
from app.main import app
from app.models.business import Business
from app.models.business_hours import BusinessHours
from app.models.service import Service
from app.models.special_date import SpecialDate

# In-memory SQLite by default; point at Postgres with TEST_DATABASE_URL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def db():
    """Create a fresh database session for each test."""
    engine = make_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)  # Clean slate
        await conn.run_sync(Base.metadata.create_all)

    async with make_session_factory(engine)() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def override_get_db(db: AsyncSession):
    """Override the get_db dependency to use test database."""

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client(override_get_db):
    """HTTP client bound to the app without starting the lifespan."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fixed_now():
    """Monday 2024-01-15 10:00 UTC."""
    return datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def upcoming_monday() -> date:
    """A Monday at least a week ahead of the real clock, for API tests."""
    today = datetime.now(timezone.utc).date()
    return today + timedelta(days=(7 - today.weekday()) + 7)


# Calendar fixtures


@pytest.fixture
async def business(db: AsyncSession) -> Business:
    """Salon open Monday to Friday 09:00-17:00, closed Saturday, no Sunday hours."""
    business = Business(
        name="Test Salon",
        slug="test-salon",
        timezone="Europe/London",
        settings={
            "buffer_time": 15,
            "slot_interval": 30,
            "advance_booking_days": 60,
            "same_day_booking": True,
            "same_day_lead_time": 60,
        },
        is_active=True,
    )
    db.add(business)
    await db.flush()

    for day_of_week in range(1, 6):
        db.add(
            BusinessHours(
                business_id=business.id,
                day_of_week=day_of_week,
                open_time="09:00",
                close_time="17:00",
                is_closed=False,
            )
        )
    db.add(
        BusinessHours(
            business_id=business.id,
            day_of_week=6,
            open_time="09:00",
            close_time="13:00",
            is_closed=True,
        )
    )
    await db.commit()
    return business


@pytest.fixture
async def service(db: AsyncSession, business: Business) -> Service:
    service = Service(
        business_id=business.id,
        name="Cut & Finish",
        duration_minutes=60,
        price=Decimal("40.00"),
        is_active=True,
        requires_approval=False,
        requires_deposit=False,
    )
    db.add(service)
    await db.commit()
    return service


@pytest.fixture
async def approval_service(db: AsyncSession, business: Business) -> Service:
    service = Service(
        business_id=business.id,
        name="Colour Consultation",
        duration_minutes=30,
        buffer_time_minutes=0,
        price=Decimal("0.00"),
        is_active=True,
        requires_approval=True,
        requires_deposit=True,
        deposit_amount=Decimal("10.00"),
    )
    db.add(service)
    await db.commit()
    return service


@pytest.fixture
async def holiday(db: AsyncSession, business: Business) -> SpecialDate:
    """Closure on Wednesday 2024-01-17."""
    special = SpecialDate(
        business_id=business.id,
        date=date(2024, 1, 17),
        name="Staff Training",
        is_closed=True,
    )
    db.add(special)
    await db.commit()
    return special
