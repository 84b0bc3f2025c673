"""
Audit trail of engine state changes, written in the same transaction as the
change it describes.
"""

from sqlalchemy import Column, Integer, String, Index

from gatehouse.db.base import Base, utcnow
from gatehouse.db.types import UTCDateTime


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    building_id = Column(Integer, nullable=False)
    type = Column(String(50), nullable=False)
    ref_id = Column(Integer, nullable=True)
    message = Column(String(1000), nullable=False)
    created_by = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_events_building_created", "building_id", "created_at"),
        Index("ix_audit_events_ref", "type", "ref_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditEvent(id={self.id}, type={self.type}, ref={self.ref_id})>"
