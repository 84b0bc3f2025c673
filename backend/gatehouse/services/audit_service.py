"""
Audit events.

record_event() only adds the row to the caller's session; it is committed or
rolled back together with the state change it describes.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.permissions import Action, authorize
from gatehouse.core.security import Identity
from gatehouse.db.session import Database
from gatehouse.models.audit_event import AuditEvent


class EventType:
    BOOKING_CREATED = "booking_created"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    VISITOR_REQUEST = "visitor_request"
    VISITOR_VERIFIED = "visitor_verified"
    VISITOR_EXPIRED = "visitor_expired"
    VISITOR_CANCELLED = "visitor_cancelled"


def record_event(
    session: AsyncSession,
    building_id: int,
    type: str,
    ref_id: Optional[int],
    message: str,
    created_by: Optional[int],
) -> AuditEvent:
    event = AuditEvent(
        building_id=building_id,
        type=type,
        ref_id=ref_id,
        message=message,
        created_by=created_by,
    )
    session.add(event)
    return event


async def list_events(
    db: Database,
    identity: Identity,
    building_id: int,
    limit: int = 100,
) -> list[AuditEvent]:
    """Most recent audit events for a building (admins only)."""
    authorize(identity, Action.VIEW_EVENTS, building_id)

    async with db.transaction() as session:
        result = await session.execute(
            select(AuditEvent)
            .where(AuditEvent.building_id == building_id)
            .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
