"""
Booking model representing a resident's request for an amenity slot.

Key design decisions:
- Partial unique index on (created_by, amenity_id, date) over pending/approved
  rows backs the one-open-booking-per-user-per-day rule at the store level
- Status field keeps rejected and cancelled rows for history; only pending
  and approved rows consume slot capacity
- start_time/end_time are copied from the slot at admission so later slot
  edits don't rewrite history
"""

from sqlalchemy import Column, Integer, String, Date, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from gatehouse.db.base import Base, TimestampMixin
from gatehouse.db.types import UTCDateTime


class BookingStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    ALL = (PENDING, APPROVED, REJECTED, CANCELLED)
    # Statuses that hold a place in the slot
    OPEN = (PENDING, APPROVED)


_OPEN_PREDICATE = text("status IN ('pending', 'approved')")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    building_id = Column(Integer, nullable=False, index=True)
    apartment_id = Column(Integer, nullable=True)
    amenity_id = Column(Integer, ForeignKey("amenities.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    slot_name = Column(String(100), nullable=False)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    purpose = Column(String(500), nullable=False, default="")
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING)
    created_by = Column(Integer, nullable=False, index=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(UTCDateTime(), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    amenity = relationship("Amenity", back_populates="bookings", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="check_booking_status",
        ),
        # Capacity counts filter on exactly these columns
        Index("ix_bookings_slot", "amenity_id", "building_id", "date", "slot_name", "status"),
        Index(
            "uq_bookings_open_per_user_day",
            "created_by", "amenity_id", "date",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status in BookingStatus.OPEN

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, amenity={self.amenity_id}, date={self.date}, "
            f"slot={self.slot_name}, status={self.status})>"
        )
