from datetime import date, time
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

class HospitalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    location: str
    address: Optional[str] = None
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hospital_id: int
    name: str
    description: Optional[str] = None

class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hospital_id: int
    department_id: Optional[int] = None
    name: str
    specialization: str
    status: str
    availability_start: Optional[time] = None
    availability_end: Optional[time] = None
    working_days: Optional[List[int]] = None

class TimeSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: List[time]
