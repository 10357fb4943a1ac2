from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

class QueueStatusUpdate(BaseModel):
    """Row contents delivered by a queue status change notification."""
    model_config = ConfigDict(from_attributes=True)

    doctor_id: int
    current_token: Optional[int] = None
    is_active: Optional[bool] = True
    last_updated: Optional[datetime] = None

class QueuePosition(BaseModel):
    appointment_id: int
    doctor_id: int
    token_number: int
    current_token: int
    tokens_ahead: int
    estimated_wait_minutes: int
    is_your_turn: bool
    near_turn_alert: bool = False
    queue_active: bool = True
