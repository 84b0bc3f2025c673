"""
Concurrency tests: many admissions racing for one slot, many verifiers
racing for one pass. Calls go straight to the services, each in its own
transaction, the way concurrent requests would.
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy import func, select

from conftest import ADMIN, RESIDENT_X, WATCHMAN_1, WATCHMAN_2
from gatehouse.core.exceptions import DuplicateBooking, SlotFull, TransientError
from gatehouse.core.security import Identity, Role
from gatehouse.models.booking import Booking, BookingStatus
from gatehouse.models.audit_event import AuditEvent
from gatehouse.schemas.booking import BookingCreate
from gatehouse.schemas.visitor_pass import PassCreate
from gatehouse.services import booking_service
from gatehouse.services.booking_service import create_booking
from gatehouse.services.pass_service import issue_pass, verify_pass

DAY = date(2024, 1, 10)


def residents(count: int) -> list[Identity]:
    return [
        Identity(id=1000 + i, role=Role.RESIDENT, building_id=1, apartment_id=100 + i)
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_concurrent_admissions_never_exceed_capacity(database, clock, amenity_factory):
    """12 residents race for 3 places: exactly 3 admitted, 9 told the slot is full."""
    amenity = await amenity_factory(
        slots=[{"name": "Court 1", "start": "07:00", "end": "08:00", "max_per_day": 3}]
    )
    request = BookingCreate(amenity_id=amenity.id, date=DAY, slot_name="Court 1")

    results = await asyncio.gather(
        *(create_booking(database, resident, request, clock) for resident in residents(12)),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Booking)]
    full = [r for r in results if isinstance(r, SlotFull)]
    assert len(admitted) == 3
    assert len(full) == 9

    async with database.transaction() as session:
        stored = await session.scalar(
            select(func.count(Booking.id)).where(
                Booking.amenity_id == amenity.id,
                Booking.date == DAY,
                Booking.status.in_(BookingStatus.OPEN),
            )
        )
        events = await session.scalar(select(func.count(AuditEvent.id)))
    assert stored == 3
    assert events == 3


@pytest.mark.asyncio
async def test_concurrent_duplicate_across_slots(database, clock, amenity_factory):
    """Same resident, same day, two slots at once: one booking survives."""
    amenity = await amenity_factory(
        slots=[
            {"name": "Morning", "start": "06:00", "end": "12:00", "max_per_day": 5},
            {"name": "Evening", "start": "16:00", "end": "22:00", "max_per_day": 5},
        ]
    )
    requests = [
        BookingCreate(amenity_id=amenity.id, date=DAY, slot_name=slot)
        for slot in ("Morning", "Evening", "Morning", "Evening")
    ]

    results = await asyncio.gather(
        *(create_booking(database, RESIDENT_X, r, clock) for r in requests),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Booking) for r in results) == 1
    assert sum(isinstance(r, DuplicateBooking) for r in results) == 3


@pytest.mark.asyncio
async def test_admission_gives_up_after_repeated_contention(database, clock, amenity, monkeypatch):
    """A slot claim that keeps losing ends in a retryable error, not a booking."""
    attempts = []

    async def always_contended(session, *args):
        attempts.append(args)
        return False

    monkeypatch.setattr(booking_service, "_claim_slot", always_contended)
    request = BookingCreate(amenity_id=amenity.id, date=DAY, slot_name="Morning")

    with pytest.raises(TransientError):
        await create_booking(database, RESIDENT_X, request, clock)
    assert len(attempts) == booking_service.settings.BOOKING_MAX_RETRIES

    async with database.transaction() as session:
        assert await session.scalar(select(func.count(Booking.id))) == 0


@pytest.mark.asyncio
async def test_concurrent_verification_single_winner(database, clock):
    """Three verifiers at once: one "verified", the rest replay the winner."""
    visitor_pass = await issue_pass(database, RESIDENT_X, 1, PassCreate(visitor_name="Courier"), clock)

    answers = await asyncio.gather(
        *(verify_pass(database, v, 1, visitor_pass.code, clock) for v in (WATCHMAN_1, WATCHMAN_2, ADMIN))
    )

    messages = sorted(a.message for a in answers)
    assert messages == ["already verified", "already verified", "verified"]
    assert all(a.valid for a in answers)

    winner = next(a for a in answers if a.message == "verified")
    assert {a.verified_by for a in answers} == {winner.verified_by}
    assert {a.verified_at for a in answers} == {winner.verified_at}

    async with database.transaction() as session:
        verified_events = await session.scalar(
            select(func.count(AuditEvent.id)).where(AuditEvent.type == "visitor_verified")
        )
    assert verified_events == 1


@pytest.mark.asyncio
async def test_concurrent_verification_after_expiry(database, clock):
    visitor_pass = await issue_pass(database, RESIDENT_X, 1, PassCreate(), clock)
    clock.advance(minutes=31)

    answers = await asyncio.gather(
        *(verify_pass(database, v, 1, visitor_pass.code, clock) for v in (WATCHMAN_1, WATCHMAN_2))
    )

    assert [a.message for a in answers] == ["expired", "expired"]
    assert not any(a.valid for a in answers)
    assert all(a.status == "expired" for a in answers)
