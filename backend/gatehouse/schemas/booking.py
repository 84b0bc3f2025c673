"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    amenity_id: int
    date: date
    slot_name: str = Field(..., min_length=1, max_length=100)
    purpose: str = Field(default="", max_length=500)


class BookingReject(BaseModel):
    rejection_reason: Optional[str] = Field(None, max_length=500)


class BookingFilters(BaseModel):
    status: Optional[Literal["pending", "approved", "rejected", "cancelled"]] = None
    amenity_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class BookingResponse(BaseModel):
    id: int
    building_id: int
    apartment_id: Optional[int]
    amenity_id: int
    date: date
    slot_name: str
    start_time: Optional[str]
    end_time: Optional[str]
    purpose: str
    status: str
    created_by: int
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingActionResponse(BaseModel):
    message: str
    booking: BookingResponse
