"""
Capacity evaluation for amenity slots.

remaining = max_per_day - (pending + approved bookings for the slot), never
below zero. A slot name that is no longer defined on the amenity has no
capacity at all; stale bookings against a renamed slot must not break
availability listings.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.models.amenity import Amenity
from gatehouse.models.booking import Booking, BookingStatus


def find_slot(slots: list[dict], slot_name: str) -> Optional[dict]:
    for slot in slots:
        if slot.get("name") == slot_name:
            return slot
    return None


def slot_capacity(slot: Optional[dict]) -> int:
    if slot is None:
        return 0
    return int(slot.get("max_per_day") or 1)


def remaining_from_count(slot: Optional[dict], booked: int) -> int:
    return max(0, slot_capacity(slot) - booked)


async def count_open_bookings(
    session: AsyncSession,
    amenity_id: int,
    building_id: int,
    booking_date: date,
    slot_name: str,
) -> int:
    result = await session.execute(
        select(func.count(Booking.id)).where(
            Booking.amenity_id == amenity_id,
            Booking.building_id == building_id,
            Booking.date == booking_date,
            Booking.slot_name == slot_name,
            Booking.status.in_(BookingStatus.OPEN),
        )
    )
    return result.scalar_one()


async def remaining_capacity(
    session: AsyncSession,
    amenity: Amenity,
    building_id: int,
    booking_date: date,
    slot_name: str,
) -> int:
    slot = find_slot(amenity.slots, slot_name)
    if slot is None or not amenity.is_active:
        return 0
    booked = await count_open_bookings(session, amenity.id, building_id, booking_date, slot_name)
    return remaining_from_count(slot, booked)


async def open_counts_by_day(
    session: AsyncSession,
    amenity_id: int,
    building_id: int,
    start: date,
    end: date,
) -> dict[tuple[date, str], int]:
    """Open booking counts keyed by (date, slot_name) for start <= date <= end."""
    result = await session.execute(
        select(Booking.date, Booking.slot_name, func.count(Booking.id))
        .where(
            Booking.amenity_id == amenity_id,
            Booking.building_id == building_id,
            Booking.date >= start,
            Booking.date <= end,
            Booking.status.in_(BookingStatus.OPEN),
        )
        .group_by(Booking.date, Booking.slot_name)
    )
    return {(row[0], row[1]): row[2] for row in result.all()}
