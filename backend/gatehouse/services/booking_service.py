"""
Booking service: admission into amenity slots and the booking lifecycle.

CONCURRENCY STRATEGY: Slot Claim with Optimistic Retry
======================================================

Problem:
  Two residents book the last place in a slot simultaneously.
  Both count 0 open bookings against max_per_day=1, both insert.
  Result: the slot is oversubscribed.

Solution:
  Every (amenity, building, date, slot) has a slot_claims row with a
  `version` counter. Admission runs in one transaction:

  1. Read the claim row (insert it on first use)
  2. UPDATE slot_claims SET version = version + 1
     WHERE id = :id AND version = :seen_version
  3. If rows_affected == 0, another admission for the same slot committed
     in between -> roll back and retry the whole transaction
  4. Count open bookings, reject with SlotFull / DuplicateBooking, insert

  Holding the bumped claim row means no other admission for the same slot
  can reach step 4 until this transaction ends, so the count in step 4 is
  the count the insert is judged against. Admissions for different slots
  touch different rows and never wait on each other.

  The one-open-booking-per-user-per-day rule spans slots, so it is also
  backed by a partial unique index; a violation surfaces as DuplicateBooking.

Lifecycle:
  pending -> approved | rejected | cancelled
  approved -> cancelled
  Each move is a compare-and-set on `status` (gatehouse.db.transitions), so
  two admins deciding the same booking at once produce one winner and one
  NotPending. Cancellation only frees capacity and needs no slot claim.
"""

from typing import Optional

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.clock import Clock
from gatehouse.core.config import get_settings
from gatehouse.core.exceptions import (
    AlreadyCancelled,
    BookingClosed,
    DuplicateBooking,
    NotFound,
    NotPending,
    SlotFull,
    TransientError,
    ValidationError,
)
from gatehouse.core.logging import get_logger
from gatehouse.core.metrics import admission_latency, record_admission, record_transition, slot_claim_retries
from gatehouse.core.permissions import Action, authorize
from gatehouse.core.security import Identity
from gatehouse.db.session import Database
from gatehouse.db.transitions import reload, transition
from gatehouse.models.booking import Booking, BookingStatus
from gatehouse.models.slot_claim import SlotClaim
from gatehouse.schemas.booking import BookingCreate, BookingFilters
from gatehouse.services import cache_service
from gatehouse.services.amenity_service import load_amenity
from gatehouse.services.audit_service import EventType, record_event
from gatehouse.services.capacity import find_slot, remaining_capacity

logger = get_logger(__name__)
settings = get_settings()


class _SlotContended(Exception):
    """Another admission for the same slot committed first."""


async def _claim_slot(
    session: AsyncSession,
    amenity_id: int,
    building_id: int,
    booking_date,
    slot_name: str,
) -> bool:
    key = (
        SlotClaim.amenity_id == amenity_id,
        SlotClaim.building_id == building_id,
        SlotClaim.date == booking_date,
        SlotClaim.slot_name == slot_name,
    )
    claim = (await session.execute(select(SlotClaim).where(*key))).scalar_one_or_none()

    if claim is None:
        try:
            async with session.begin_nested():
                claim = SlotClaim(
                    amenity_id=amenity_id,
                    building_id=building_id,
                    date=booking_date,
                    slot_name=slot_name,
                    version=1,
                )
                session.add(claim)
        except IntegrityError:
            # First booking for this slot raced with ours; use theirs
            claim = (await session.execute(select(SlotClaim).where(*key))).scalar_one()

    return await transition(
        session,
        SlotClaim,
        claim.id,
        when=[SlotClaim.version == claim.version],
        values={"version": claim.version + 1},
    )


async def _has_open_booking(session: AsyncSession, user_id: int, amenity_id: int, booking_date) -> bool:
    result = await session.execute(
        select(Booking.id).where(
            Booking.created_by == user_id,
            Booking.amenity_id == amenity_id,
            Booking.date == booking_date,
            Booking.status.in_(BookingStatus.OPEN),
        ).limit(1)
    )
    return result.first() is not None


async def _admit(session: AsyncSession, identity: Identity, data: BookingCreate) -> Booking:
    building_id = identity.building_id
    amenity = await load_amenity(session, data.amenity_id)
    slot = find_slot(amenity.slots, data.slot_name)
    if slot is None:
        raise ValidationError("Invalid slot selected")

    if not await _claim_slot(session, amenity.id, building_id, data.date, data.slot_name):
        raise _SlotContended()

    remaining = await remaining_capacity(session, amenity, building_id, data.date, data.slot_name)
    if remaining <= 0:
        logger.warning(
            "booking_rejected_slot_full",
            amenity_id=amenity.id,
            date=str(data.date),
            slot=data.slot_name,
        )
        raise SlotFull(
            data.slot_name,
            data.date,
            alternatives=[s["name"] for s in amenity.slots if s["name"] != data.slot_name],
        )

    if await _has_open_booking(session, identity.id, amenity.id, data.date):
        logger.warning("booking_rejected_duplicate", amenity_id=amenity.id, date=str(data.date))
        raise DuplicateBooking()

    booking = Booking(
        building_id=building_id,
        apartment_id=identity.apartment_id,
        amenity_id=amenity.id,
        date=data.date,
        slot_name=data.slot_name,
        start_time=slot.get("start"),
        end_time=slot.get("end"),
        purpose=data.purpose,
        status=BookingStatus.PENDING,
        created_by=identity.id,
    )
    session.add(booking)
    try:
        await session.flush()
    except IntegrityError:
        # Same user, same amenity and day, different slot, admitted concurrently
        raise DuplicateBooking()

    record_event(
        session,
        building_id=building_id,
        type=EventType.BOOKING_CREATED,
        ref_id=booking.id,
        message=f"New booking for {amenity.name} ({data.slot_name}) on {data.date}",
        created_by=identity.id,
    )
    return booking


async def create_booking(
    db: Database,
    identity: Identity,
    data: BookingCreate,
    clock: Clock,
) -> Booking:
    """
    Admit a resident's booking request into a slot as `pending`.
    Retries up to BOOKING_MAX_RETRIES times when another admission for the
    same slot wins the claim, then gives up with TransientError.
    """
    authorize(identity, Action.CREATE_BOOKING, identity.building_id)
    if identity.building_id is None:
        raise ValidationError("Resident is not assigned to a building")

    today = clock.today(settings.BUILDING_TIMEZONE)
    if data.date < today:
        raise ValidationError("Cannot book for past dates")

    with admission_latency.time():
        for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
            try:
                async with db.transaction() as session:
                    booking = await _admit(session, identity, data)
            except _SlotContended:
                slot_claim_retries.inc()
                logger.info(
                    "booking_retry",
                    amenity_id=data.amenity_id,
                    date=str(data.date),
                    slot=data.slot_name,
                    attempt=attempt,
                    reason="slot_claim_conflict",
                )
                continue
            except SlotFull:
                record_admission("slot_full")
                raise
            except DuplicateBooking:
                record_admission("duplicate")
                raise

            record_admission("admitted")
            await cache_service.invalidate_availability(booking.amenity_id, booking.building_id)
            logger.info(
                "booking_created",
                booking_id=booking.id,
                amenity_id=booking.amenity_id,
                date=str(booking.date),
                slot=booking.slot_name,
                attempt=attempt,
            )
            return booking

    record_admission("error")
    raise TransientError("Booking failed due to high demand. Please try again.")


async def _load_booking(session: AsyncSession, booking_id: int) -> Booking:
    booking = await session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    return booking


async def approve_booking(db: Database, identity: Identity, booking_id: int, clock: Clock) -> Booking:
    async with db.transaction() as session:
        booking = await _load_booking(session, booking_id)
        authorize(identity, Action.DECIDE_BOOKING, booking.building_id)

        won = await transition(
            session,
            Booking,
            booking.id,
            when=[Booking.status == BookingStatus.PENDING],
            values={
                "status": BookingStatus.APPROVED,
                "approved_by": identity.id,
                "approved_at": clock.now(),
            },
        )
        booking = await reload(session, Booking, booking_id)
        if not won:
            raise NotPending(booking.status)

        record_event(
            session,
            building_id=booking.building_id,
            type=EventType.BOOKING_APPROVED,
            ref_id=booking.id,
            message=f"Booking for {booking.slot_name} on {booking.date} approved",
            created_by=identity.id,
        )

    record_transition("approved")
    logger.info("booking_approved", booking_id=booking_id)
    return booking


async def reject_booking(
    db: Database,
    identity: Identity,
    booking_id: int,
    reason: Optional[str],
    clock: Clock,
) -> Booking:
    reason = (reason or "").strip()

    async with db.transaction() as session:
        booking = await _load_booking(session, booking_id)
        authorize(identity, Action.DECIDE_BOOKING, booking.building_id)
        if len(reason) < settings.REJECTION_REASON_MIN_LENGTH:
            raise ValidationError(
                f"Rejection reason is required (minimum {settings.REJECTION_REASON_MIN_LENGTH} characters)"
            )

        won = await transition(
            session,
            Booking,
            booking.id,
            when=[Booking.status == BookingStatus.PENDING],
            values={
                "status": BookingStatus.REJECTED,
                "rejection_reason": reason,
                "approved_by": identity.id,
                "approved_at": clock.now(),
            },
        )
        booking = await reload(session, Booking, booking_id)
        if not won:
            raise NotPending(booking.status)

        record_event(
            session,
            building_id=booking.building_id,
            type=EventType.BOOKING_REJECTED,
            ref_id=booking.id,
            message=f"Booking for {booking.slot_name} on {booking.date} rejected: {reason}",
            created_by=identity.id,
        )

    record_transition("rejected")
    await cache_service.invalidate_availability(booking.amenity_id, booking.building_id)
    logger.info("booking_rejected", booking_id=booking_id)
    return booking


async def cancel_booking(db: Database, identity: Identity, booking_id: int, clock: Clock) -> Booking:
    async with db.transaction() as session:
        booking = await _load_booking(session, booking_id)
        authorize(identity, Action.CANCEL_BOOKING, booking.building_id, owner_id=booking.created_by)

        won = await transition(
            session,
            Booking,
            booking.id,
            when=[Booking.status.in_(BookingStatus.OPEN)],
            values={"status": BookingStatus.CANCELLED, "cancelled_by": identity.id},
        )
        booking = await reload(session, Booking, booking_id)
        if not won:
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelled("Booking is already cancelled")
            raise BookingClosed(f"Booking is already {booking.status}")

        record_event(
            session,
            building_id=booking.building_id,
            type=EventType.BOOKING_CANCELLED,
            ref_id=booking.id,
            message=f"Booking for {booking.slot_name} on {booking.date} cancelled",
            created_by=identity.id,
        )

    record_transition("cancelled")
    await cache_service.invalidate_availability(booking.amenity_id, booking.building_id)
    logger.info("booking_cancelled", booking_id=booking_id, at=clock.now().isoformat())
    return booking


_STATUS_ORDER = case(
    {
        BookingStatus.PENDING: 1,
        BookingStatus.APPROVED: 2,
        BookingStatus.REJECTED: 3,
        BookingStatus.CANCELLED: 4,
    },
    value=Booking.status,
)


async def list_my_bookings(db: Database, identity: Identity) -> list[Booking]:
    """The caller's bookings, open ones first, newest date first."""
    async with db.transaction() as session:
        result = await session.execute(
            select(Booking)
            .where(Booking.created_by == identity.id)
            .order_by(_STATUS_ORDER, Booking.date.desc(), Booking.start_time.desc())
        )
        return list(result.scalars().all())


async def list_building_bookings(
    db: Database,
    identity: Identity,
    building_id: int,
    filters: BookingFilters,
) -> list[Booking]:
    authorize(identity, Action.VIEW_BOOKINGS, building_id)

    query = select(Booking).where(Booking.building_id == building_id)
    if filters.status:
        query = query.where(Booking.status == filters.status)
    if filters.amenity_id:
        query = query.where(Booking.amenity_id == filters.amenity_id)
    if filters.date_from:
        query = query.where(Booking.date >= filters.date_from)
    if filters.date_to:
        query = query.where(Booking.date <= filters.date_to)

    async with db.transaction() as session:
        result = await session.execute(
            query.order_by(Booking.date.desc(), Booking.start_time.desc())
        )
        return list(result.scalars().all())
