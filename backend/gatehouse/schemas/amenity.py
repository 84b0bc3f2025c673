"""
Pydantic schemas for amenity administration and availability views.
"""

import re
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class SlotDefinition(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start: str
    end: str
    max_per_day: int = Field(default=1, ge=1, le=1000)

    @field_validator("start", "end")
    @classmethod
    def check_time(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("time must be HH:MM")
        return v

    @model_validator(mode="after")
    def check_order(self):
        if self.start >= self.end:
            raise ValueError("slot must end after it starts")
        return self


def _unique_slot_names(slots: Optional[list[SlotDefinition]]):
    if slots is not None:
        names = [s.name for s in slots]
        if len(names) != len(set(names)):
            raise ValueError("slot names must be unique")
    return slots


class AmenityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    icon: Optional[str] = Field(None, max_length=50)
    color: Optional[str] = Field(None, max_length=20)
    operating_hours: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    slots: Optional[list[SlotDefinition]] = Field(None, min_length=1)

    @field_validator("slots")
    @classmethod
    def check_slot_names(cls, v):
        return _unique_slot_names(v)


class AmenityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    icon: Optional[str] = Field(None, max_length=50)
    color: Optional[str] = Field(None, max_length=20)
    operating_hours: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    slots: Optional[list[SlotDefinition]] = Field(None, min_length=1)

    @field_validator("slots")
    @classmethod
    def check_slot_names(cls, v):
        return _unique_slot_names(v)


class AmenityResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    icon: Optional[str]
    color: Optional[str]
    operating_hours: Optional[str]
    is_active: bool
    slots: list[SlotDefinition]
    created_at: datetime

    model_config = {"from_attributes": True}


class SlotAvailability(BaseModel):
    name: str
    start_time: str
    end_time: str
    booked_count: int
    max_per_day: int
    remaining: int


class DateAvailability(BaseModel):
    date: date
    day: int
    weekday: str
    month: str
    available_slots: list[SlotAvailability]


class AvailabilityResponse(BaseModel):
    amenity: AmenityResponse
    month: int
    year: int
    available_dates: list[DateAvailability]
    cached: bool = False
