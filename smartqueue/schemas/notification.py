from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: Optional[int] = None
    message: str
    type: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None
