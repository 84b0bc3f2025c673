"""
Pytest fixtures for the test database, client, clock and caller identities.

Each test gets its own SQLite file, so admissions and verifications run
against a real store with real transactions, including the concurrent ones.
Redis is disabled; the availability cache degrades to a no-op.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-gatehouse-suite-only")
os.environ.setdefault("BUILDING_TIMEZONE", "UTC")

from datetime import datetime, timezone
from typing import AsyncGenerator, Callable, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from gatehouse.main import app
from gatehouse.core.clock import FixedClock, get_clock
from gatehouse.core.security import Identity, Role, create_access_token
from gatehouse.db.session import Database, get_database
from gatehouse.models.amenity import Amenity

# 09:00 UTC on a Tuesday; "today" for bookings is 2024-01-09
NOW = datetime(2024, 1, 9, 9, 0, tzinfo=timezone.utc)

RESIDENT_X = Identity(id=101, role=Role.RESIDENT, building_id=1, apartment_id=11)
RESIDENT_Y = Identity(id=102, role=Role.RESIDENT, building_id=1, apartment_id=12)
OUTSIDER = Identity(id=103, role=Role.RESIDENT, building_id=2, apartment_id=21)
ADMIN = Identity(id=201, role=Role.BUILDING_ADMIN, building_id=1)
OTHER_ADMIN = Identity(id=202, role=Role.BUILDING_ADMIN, building_id=2)
WATCHMAN_1 = Identity(id=301, role=Role.WATCHMAN, building_id=1)
WATCHMAN_2 = Identity(id=302, role=Role.WATCHMAN, building_id=1)
OTHER_WATCHMAN = Identity(id=303, role=Role.WATCHMAN, building_id=2)
SUPER_ADMIN = Identity(id=1, role=Role.SUPER_ADMIN)

DEFAULT_TEST_SLOTS = [
    {"name": "Morning", "start": "06:00", "end": "12:00", "max_per_day": 1},
    {"name": "Evening", "start": "16:00", "end": "22:00", "max_per_day": 1},
]


@pytest_asyncio.fixture(scope="function")
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh schema in a throwaway SQLite file."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'gatehouse_test.db'}")
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest_asyncio.fixture(scope="function")
async def client(database: Database, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and the pinned clock."""
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[Identity], dict]:
    """Authorization headers with a Bearer token for the given identity."""

    def _headers(identity: Identity) -> dict:
        return {"Authorization": f"Bearer {create_access_token(identity)}"}

    return _headers


@pytest.fixture
def amenity_factory(database: Database):
    async def _create(
        name: str = "Clubhouse",
        slots: Optional[list[dict]] = None,
        is_active: bool = True,
    ) -> Amenity:
        async with database.transaction() as session:
            amenity = Amenity(
                name=name,
                is_active=is_active,
                booking_slots=slots if slots is not None else DEFAULT_TEST_SLOTS,
            )
            session.add(amenity)
            await session.flush()
        return amenity

    return _create


@pytest_asyncio.fixture
async def amenity(amenity_factory) -> Amenity:
    """Clubhouse with a Morning and an Evening slot, one booking each per day."""
    return await amenity_factory()
