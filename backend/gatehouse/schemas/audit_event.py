from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AuditEventResponse(BaseModel):
    id: int
    building_id: int
    type: str
    ref_id: Optional[int]
    message: str
    created_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}
