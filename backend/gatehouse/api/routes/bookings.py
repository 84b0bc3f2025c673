"""
Booking endpoints: slot admission and the approval lifecycle.
"""

from fastapi import APIRouter, Depends, status

from gatehouse.core.clock import Clock, get_clock
from gatehouse.core.security import Identity, get_current_identity
from gatehouse.db.session import Database, get_database
from gatehouse.schemas.booking import (
    BookingActionResponse,
    BookingCreate,
    BookingFilters,
    BookingReject,
    BookingResponse,
)
from gatehouse.services.booking_service import (
    approve_booking,
    cancel_booking,
    create_booking,
    list_building_bookings,
    list_my_bookings,
    reject_booking,
)

router = APIRouter(tags=["Bookings"])


def _action_response(message: str, booking) -> BookingActionResponse:
    return BookingActionResponse(message=message, booking=BookingResponse.model_validate(booking))


@router.post("/bookings", response_model=BookingActionResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    data: BookingCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    """
    Request a slot. The booking starts as pending.

    Admission is serialized per slot, so concurrent requests can never push
    a slot past its daily capacity; the losers get 409 slot_full.
    """
    booking = await create_booking(db, identity, data, clock)
    return _action_response("Booking request submitted. Waiting for admin approval.", booking)


@router.get("/bookings/my", response_model=list[BookingResponse])
async def my_bookings_endpoint(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    return await list_my_bookings(db, identity)


@router.get("/buildings/{building_id}/bookings", response_model=list[BookingResponse])
async def building_bookings_endpoint(
    building_id: int,
    filters: BookingFilters = Depends(),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    return await list_building_bookings(db, identity, building_id, filters)


@router.post("/bookings/{booking_id}/approve", response_model=BookingActionResponse)
async def approve_booking_endpoint(
    booking_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    booking = await approve_booking(db, identity, booking_id, clock)
    return _action_response("Booking approved successfully", booking)


@router.post("/bookings/{booking_id}/reject", response_model=BookingActionResponse)
async def reject_booking_endpoint(
    booking_id: int,
    data: BookingReject,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    booking = await reject_booking(db, identity, booking_id, data.rejection_reason, clock)
    return _action_response("Booking rejected successfully", booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingActionResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    booking = await cancel_booking(db, identity, booking_id, clock)
    return _action_response("Booking cancelled successfully", booking)
