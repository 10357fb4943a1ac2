from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import date, datetime, time, timedelta
from typing import List, Optional
import logging

from ..core.config import settings
from ..models.hospital import Hospital, Department
from ..models.doctor import Doctor, DoctorStatus

logger = logging.getLogger(__name__)

# Window used for doctors without a configured schedule
DEFAULT_DAY_START = time(9, 0)
DEFAULT_DAY_END = time(17, 0)

def doctor_time_slots(doctor: Doctor, day: date, slot_minutes: Optional[int] = None) -> List[time]:
    """Bookable start times for a doctor on a given day.

    Slots run from availability_start up to (not including) availability_end
    in slot_minutes steps. Returns an empty list on days outside the doctor's
    working_days (ISO weekdays, Monday is 1).
    """
    slot_minutes = slot_minutes or settings.SLOT_MINUTES
    if doctor.working_days and day.isoweekday() not in doctor.working_days:
        return []

    start = datetime.combine(day, doctor.availability_start or DEFAULT_DAY_START)
    end = datetime.combine(day, doctor.availability_end or DEFAULT_DAY_END)
    step = timedelta(minutes=slot_minutes)

    slots = []
    current = start
    while current + step <= end:
        slots.append(current.time())
        current += step
    return slots

class CatalogService:
    """Read-only access to hospitals, departments and doctors.

    Store failures are logged and reported as 503 with a short message; nothing
    is cached and no retry is attempted.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_hospitals(self, query: Optional[str] = None) -> List[Hospital]:
        try:
            hospitals = self.db.query(Hospital)
            if query and query.strip():
                pattern = f"%{query.strip().lower()}%"
                hospitals = hospitals.filter(or_(
                    Hospital.name.ilike(pattern),
                    Hospital.location.ilike(pattern),
                    Hospital.address.ilike(pattern),
                ))
            return hospitals.order_by(Hospital.name).all()
        except SQLAlchemyError as e:
            raise self._load_failed("hospitals", e)

    def get_hospital(self, hospital_id: int) -> Hospital:
        try:
            hospital = self.db.query(Hospital).filter(Hospital.id == hospital_id).first()
        except SQLAlchemyError as e:
            raise self._load_failed("hospitals", e)
        if not hospital:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Hospital not found"
            )
        return hospital

    def list_departments(self, hospital_id: int) -> List[Department]:
        try:
            return self.db.query(Department).filter(
                Department.hospital_id == hospital_id
            ).order_by(Department.name).all()
        except SQLAlchemyError as e:
            raise self._load_failed("departments", e)

    def get_department(self, department_id: int) -> Department:
        try:
            department = self.db.query(Department).filter(
                Department.id == department_id
            ).first()
        except SQLAlchemyError as e:
            raise self._load_failed("departments", e)
        if not department:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Department not found"
            )
        return department

    def list_doctors(self, department_id: int) -> List[Doctor]:
        """Active doctors of a department."""
        try:
            return self.db.query(Doctor).filter(
                Doctor.department_id == department_id,
                Doctor.status == DoctorStatus.ACTIVE.value
            ).order_by(Doctor.name).all()
        except SQLAlchemyError as e:
            raise self._load_failed("doctors", e)

    def get_doctor(self, doctor_id: int) -> Doctor:
        try:
            doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        except SQLAlchemyError as e:
            raise self._load_failed("doctors", e)
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Doctor not found"
            )
        return doctor

    def _load_failed(self, what: str, error: Exception) -> HTTPException:
        self.db.rollback()
        logger.error(f"Failed to load {what}: {error}")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to load {what}"
        )
