"""
Amenity model: a shared facility with named daily booking slots.

`booking_slots` is the capacity source of truth. Each entry is
{"name", "start", "end", "max_per_day"}; an amenity with no slot list is
bookable through DEFAULT_SLOTS.
"""

from sqlalchemy import Column, Integer, String, Boolean, JSON
from sqlalchemy.orm import relationship

from gatehouse.db.base import Base, TimestampMixin

DEFAULT_SLOTS = [
    {"name": "Default", "start": "08:00", "end": "20:00", "max_per_day": 1},
]


class Amenity(Base, TimestampMixin):
    __tablename__ = "amenities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    icon = Column(String(50), nullable=True)
    color = Column(String(20), nullable=True)
    operating_hours = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    booking_slots = Column(JSON, nullable=True)

    bookings = relationship("Booking", back_populates="amenity", lazy="noload")

    @property
    def slots(self) -> list[dict]:
        return self.booking_slots or DEFAULT_SLOTS

    def __repr__(self) -> str:
        return f"<Amenity(id={self.id}, name={self.name}, active={self.is_active})>"
