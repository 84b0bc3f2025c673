from fastapi import APIRouter, Depends, Query

from gatehouse.core.security import Identity, get_current_identity
from gatehouse.db.session import Database, get_database
from gatehouse.schemas.audit_event import AuditEventResponse
from gatehouse.services.audit_service import list_events

router = APIRouter(tags=["Audit"])


@router.get("/buildings/{building_id}/events", response_model=list[AuditEventResponse])
async def list_events_endpoint(
    building_id: int,
    limit: int = Query(100, ge=1, le=500),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
):
    """Recent booking and visitor pass activity for the building."""
    return await list_events(db, identity, building_id, limit)
