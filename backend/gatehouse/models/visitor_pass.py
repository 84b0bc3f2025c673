"""
Visitor pass model.

Key design decisions:
- `code` is unique across the table; it is what a visitor reads out at the gate
- `expires_at` is written once at issuance and never extended
- status only moves forward out of `active`; expiry is detected lazily and
  persisted by whoever notices it first
"""

from sqlalchemy import Column, Integer, String, Index, CheckConstraint

from gatehouse.db.base import Base, utcnow
from gatehouse.db.types import UTCDateTime


class PassStatus:
    ACTIVE = "active"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    ALL = (ACTIVE, VERIFIED, CANCELLED, EXPIRED)


class VisitorPass(Base):
    __tablename__ = "visitor_passes"

    id = Column(Integer, primary_key=True, index=True)
    building_id = Column(Integer, nullable=False, index=True)
    apartment_id = Column(Integer, nullable=True)
    code = Column(String(32), nullable=False, unique=True)
    visitor_name = Column(String(255), nullable=True)
    qr_data = Column(String(2000), nullable=True)
    status = Column(String(20), nullable=False, default=PassStatus.ACTIVE)
    created_by = Column(Integer, nullable=False, index=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime(), nullable=False)
    verified_at = Column(UTCDateTime(), nullable=True)
    verified_by = Column(Integer, nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'verified', 'cancelled', 'expired')",
            name="check_visitor_pass_status",
        ),
        # Gate lookups are always code + building
        Index("ix_visitor_passes_building_code", "building_id", "code"),
        Index("ix_visitor_passes_building_status_expiry", "building_id", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<VisitorPass(id={self.id}, code={self.code}, status={self.status})>"
