from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ActivityEventOut(BaseModel):
    activity_event_id: int
    cycle_id: Optional[int] = None
    entity_type: str
    entity_id: Optional[str] = None
    action_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    performed_by_email: Optional[str] = None
    meta_json: Optional[Dict[str, Any]] = None
    created_at: datetime
