"""
Amenity administration and the month availability view.
"""

import calendar
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.clock import Clock
from gatehouse.core.config import get_settings
from gatehouse.core.exceptions import NotFound, ValidationError
from gatehouse.core.logging import get_logger
from gatehouse.core.permissions import Action, authorize
from gatehouse.core.security import Identity
from gatehouse.db.session import Database
from gatehouse.models.amenity import Amenity
from gatehouse.schemas.amenity import AmenityCreate, AmenityResponse, AmenityUpdate
from gatehouse.services import cache_service
from gatehouse.services.capacity import open_counts_by_day, remaining_from_count, slot_capacity

logger = get_logger(__name__)
settings = get_settings()


async def load_amenity(session: AsyncSession, amenity_id: int, active_only: bool = True) -> Amenity:
    query = select(Amenity).where(Amenity.id == amenity_id)
    if active_only:
        query = query.where(Amenity.is_active.is_(True))
    amenity = (await session.execute(query)).scalar_one_or_none()
    if amenity is None:
        raise NotFound("Amenity not found")
    return amenity


async def list_amenities(db: Database, active_only: bool = True) -> list[Amenity]:
    async with db.transaction() as session:
        query = select(Amenity).order_by(Amenity.name)
        if active_only:
            query = query.where(Amenity.is_active.is_(True))
        result = await session.execute(query)
        return list(result.scalars().all())


async def get_amenity(db: Database, amenity_id: int) -> Amenity:
    async with db.transaction() as session:
        return await load_amenity(session, amenity_id)


async def create_amenity(db: Database, identity: Identity, data: AmenityCreate) -> Amenity:
    authorize(identity, Action.MANAGE_AMENITIES)

    async with db.transaction() as session:
        amenity = Amenity(
            name=data.name,
            description=data.description,
            icon=data.icon,
            color=data.color,
            operating_hours=data.operating_hours,
            is_active=data.is_active,
            booking_slots=[s.model_dump() for s in data.slots] if data.slots else None,
        )
        session.add(amenity)
        await session.flush()
        await session.refresh(amenity)

    logger.info("amenity_created", amenity_id=amenity.id, name=amenity.name)
    return amenity


async def update_amenity(
    db: Database, identity: Identity, amenity_id: int, data: AmenityUpdate
) -> Amenity:
    """
    Administrative edit. Renaming or removing a slot leaves existing bookings
    in place; the capacity evaluator treats their slot as having no capacity.
    """
    authorize(identity, Action.MANAGE_AMENITIES)

    changes = data.model_dump(exclude_unset=True)
    for required in ("name", "is_active"):
        if required in changes and changes[required] is None:
            raise ValidationError(f"{required} cannot be null")
    if "slots" in changes:
        if data.slots is None:
            raise ValidationError("slots cannot be cleared, supply at least one slot")
        changes["booking_slots"] = [s.model_dump() for s in data.slots]
        del changes["slots"]

    async with db.transaction() as session:
        amenity = await load_amenity(session, amenity_id, active_only=False)
        for field, value in changes.items():
            setattr(amenity, field, value)
        await session.flush()
        await session.refresh(amenity)

    # Slot edits change capacity in every building
    await cache_service.invalidate_availability(amenity_id)
    logger.info("amenity_updated", amenity_id=amenity_id, fields=sorted(changes))
    return amenity


async def list_availability(
    db: Database,
    identity: Identity,
    amenity_id: int,
    month: Optional[int],
    year: Optional[int],
    clock: Clock,
) -> dict:
    """
    Days of the requested month, from today up to the booking horizon, that
    still have at least one slot with capacity left in the caller's building.
    """
    authorize(identity, Action.VIEW_AVAILABILITY, identity.building_id)
    if identity.building_id is None:
        raise ValidationError("Caller is not assigned to a building")

    today = clock.today(settings.BUILDING_TIMEZONE)
    month = month or today.month
    year = year or today.year
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    building_id = identity.building_id
    cached = await cache_service.get_cached_availability(
        amenity_id, building_id, year, month, today.isoformat()
    )
    if cached:
        cached["cached"] = True
        return cached

    month_start = date(year, month, 1)
    month_end = date(year, month, calendar.monthrange(year, month)[1])
    horizon_end = today + timedelta(days=settings.BOOKING_HORIZON_DAYS - 1)
    window_start = max(month_start, today)
    window_end = min(month_end, horizon_end)

    async with db.transaction() as session:
        amenity = await load_amenity(session, amenity_id)
        counts = {}
        if window_start <= window_end:
            counts = await open_counts_by_day(session, amenity.id, building_id, window_start, window_end)

    available_dates = []
    day = window_start
    while day <= window_end:
        free_slots = []
        for slot in amenity.slots:
            booked = counts.get((day, slot["name"]), 0)
            remaining = remaining_from_count(slot, booked)
            if remaining > 0:
                free_slots.append({
                    "name": slot["name"],
                    "start_time": slot.get("start"),
                    "end_time": slot.get("end"),
                    "booked_count": booked,
                    "max_per_day": slot_capacity(slot),
                    "remaining": remaining,
                })
        if free_slots:
            available_dates.append({
                "date": day.isoformat(),
                "day": day.day,
                "weekday": day.strftime("%a"),
                "month": day.strftime("%b"),
                "available_slots": free_slots,
            })
        day += timedelta(days=1)

    response = {
        "amenity": AmenityResponse.model_validate(amenity).model_dump(mode="json"),
        "month": month,
        "year": year,
        "available_dates": available_dates,
        "cached": False,
    }
    await cache_service.set_cached_availability(
        amenity_id, building_id, year, month, today.isoformat(), response
    )
    return response
