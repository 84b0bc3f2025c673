"""
Amenity endpoints: catalogue, administrative edits and the availability calendar.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from gatehouse.core.clock import Clock, get_clock
from gatehouse.core.security import Identity, get_current_identity
from gatehouse.db.session import Database, get_database
from gatehouse.schemas.amenity import AmenityCreate, AmenityResponse, AmenityUpdate, AvailabilityResponse
from gatehouse.services.amenity_service import (
    create_amenity,
    get_amenity,
    list_amenities,
    list_availability,
    update_amenity,
)

router = APIRouter(prefix="/amenities", tags=["Amenities"])


@router.get("/", response_model=list[AmenityResponse])
async def list_amenities_endpoint(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    """Active amenities with their slot definitions."""
    return await list_amenities(db)


@router.post("/", response_model=AmenityResponse, status_code=status.HTTP_201_CREATED)
async def create_amenity_endpoint(
    data: AmenityCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    return await create_amenity(db, identity, data)


@router.get("/{amenity_id}", response_model=AmenityResponse)
async def get_amenity_endpoint(
    amenity_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    return await get_amenity(db, amenity_id)


@router.patch("/{amenity_id}", response_model=AmenityResponse)
async def update_amenity_endpoint(
    amenity_id: int,
    data: AmenityUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    return await update_amenity(db, identity, amenity_id, data)


@router.get("/{amenity_id}/availability", response_model=AvailabilityResponse)
async def availability_endpoint(
    amenity_id: int,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    """
    Dates in the month (from today, within the booking horizon) that still
    have a free slot in the caller's building.
    Results are cached in Redis and invalidated when bookings change.
    """
    return await list_availability(db, identity, amenity_id, month, year, clock)
