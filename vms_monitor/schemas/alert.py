from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class AlertEvent(BaseModel):
    """Payload pushed to the live notification hub for every alert."""
    id: int
    title: str
    message: str
    alert_type: str
    priority: int
    target_role: Optional[str] = None
    target_user_id: Optional[int] = None
    target_location_id: Optional[int] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True
