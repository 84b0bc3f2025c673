"""
Per-slot claim row used to serialize admissions.

One row per (amenity, building, date, slot). Admission bumps `version` with a
compare-and-set before counting bookings, so two admissions for the same slot
cannot both count the same snapshot; the loser rolls back and retries.
Admissions for different slots never touch the same row.
"""

from sqlalchemy import Column, Integer, String, Date, UniqueConstraint

from gatehouse.db.base import Base


class SlotClaim(Base):
    __tablename__ = "slot_claims"

    id = Column(Integer, primary_key=True)
    amenity_id = Column(Integer, nullable=False)
    building_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    slot_name = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("amenity_id", "building_id", "date", "slot_name", name="uq_slot_claim"),
    )

    def __repr__(self) -> str:
        return f"<SlotClaim(amenity={self.amenity_id}, date={self.date}, slot={self.slot_name}, v={self.version})>"
