from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...services.catalog_service import CatalogService, doctor_time_slots
from ...schemas.catalog import (
    HospitalResponse, DepartmentResponse, DoctorResponse, TimeSlotsResponse
)

router = APIRouter(tags=["Catalog"])

@router.get("/hospitals", response_model=List[HospitalResponse])
async def list_hospitals(
    q: Optional[str] = Query(None, description="Matches name, location or address"),
    db: Session = Depends(get_db)
):
    return CatalogService(db).list_hospitals(q)

@router.get("/hospitals/{hospital_id}", response_model=HospitalResponse)
async def get_hospital(hospital_id: int, db: Session = Depends(get_db)):
    return CatalogService(db).get_hospital(hospital_id)

@router.get("/departments", response_model=List[DepartmentResponse])
async def list_departments(
    hospital_id: int = Query(..., description="Hospital chosen in the previous step"),
    db: Session = Depends(get_db)
):
    return CatalogService(db).list_departments(hospital_id)

@router.get("/doctors", response_model=List[DoctorResponse])
async def list_doctors(
    department_id: int = Query(..., description="Department chosen in the previous step"),
    db: Session = Depends(get_db)
):
    """Active doctors of a department."""
    return CatalogService(db).list_doctors(department_id)

@router.get("/doctors/{doctor_id}/slots", response_model=TimeSlotsResponse)
async def list_time_slots(
    doctor_id: int,
    day: date = Query(..., alias="date", description="YYYY-MM-DD"),
    db: Session = Depends(get_db)
):
    """Bookable times for a doctor on a date."""
    doctor = CatalogService(db).get_doctor(doctor_id)
    return TimeSlotsResponse(
        doctor_id=doctor.id,
        date=day,
        slots=doctor_time_slots(doctor, day)
    )
