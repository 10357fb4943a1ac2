from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..models.appointment import AppointmentStatus
from .queue import QueuePosition

class AppointmentCreate(BaseModel):
    hospital_id: int
    department_id: int
    doctor_id: int
    appointment_date: date  # YYYY-MM-DD
    appointment_time: time
    notes: Optional[str] = Field(None, max_length=1000)

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    hospital_id: int
    department_id: Optional[int] = None
    doctor_id: int
    appointment_date: date
    appointment_time: time
    token_number: int
    status: AppointmentStatus
    estimated_wait_time: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

class ActiveAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    position: Optional[QueuePosition] = None
