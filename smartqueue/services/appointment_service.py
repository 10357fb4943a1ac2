from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import date
from typing import List, Optional
import logging

from ..core.config import settings
from ..models.appointment import Appointment, AppointmentStatus
from ..models.doctor import DoctorStatus
from ..models.user import User
from ..schemas.appointment import AppointmentCreate
from .catalog_service import CatalogService, doctor_time_slots
from .queue_service import QueueService
from .queue_tracker import estimated_wait_minutes, tokens_ahead
from .token_service import TokenService

logger = logging.getLogger(__name__)

# Appointment lifecycle. Only scheduled -> cancelled is driven by patients;
# every other move belongs to the staff tooling.
ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    },
    AppointmentStatus.IN_PROGRESS: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.RESCHEDULED: set(),
}

TERMINAL_STATUSES = frozenset(
    state for state, targets in ALLOWED_TRANSITIONS.items() if not targets
)

def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(AppointmentStatus(current), set())

def _store_message(error: SQLAlchemyError) -> str:
    return str(getattr(error, "orig", None) or error)

class AppointmentService:
    def __init__(self, db: Session):
        self.db = db

    def book(self, patient: User, booking: AppointmentCreate) -> Appointment:
        """Validate the selection, assign a queue token and persist the appointment.

        A token already taken by a concurrent booking trips the unique
        constraint; the insert is then retried with the next free token.
        """
        doctor = self._validate_selection(booking)
        tokens = TokenService(self.db)
        token_number = tokens.next_token(doctor.id, booking.appointment_date)

        try:
            for attempt in range(1, settings.TOKEN_ASSIGN_MAX_RETRIES + 1):
                appointment = Appointment(
                    patient_id=patient.id,
                    doctor_id=doctor.id,
                    department_id=booking.department_id,
                    hospital_id=booking.hospital_id,
                    appointment_date=booking.appointment_date,
                    appointment_time=booking.appointment_time,
                    token_number=token_number,
                    status=AppointmentStatus.SCHEDULED,
                    estimated_wait_time=self._estimate_wait(
                        doctor.id, booking.appointment_date, token_number
                    ),
                    notes=booking.notes,
                )
                self.db.add(appointment)
                try:
                    self.db.commit()
                except IntegrityError:
                    self.db.rollback()
                    logger.info(
                        f"Token {token_number} for doctor {doctor.id} on "
                        f"{booking.appointment_date} already taken (attempt {attempt})"
                    )
                    token_number = tokens.next_token_after_conflict(
                        doctor.id, booking.appointment_date
                    )
                    continue

                self.db.refresh(appointment)
                logger.info(
                    f"Booked appointment {appointment.id} for patient {patient.id}: "
                    f"doctor {doctor.id}, {appointment.appointment_date}, token {token_number}"
                )
                return appointment
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to book appointment for patient {patient.id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to book appointment: {_store_message(e)}"
            )

        logger.warning(
            f"Gave up assigning a token for doctor {doctor.id} on {booking.appointment_date}"
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Could not assign a queue token, please try again"
        )

    def list_for_patient(self, patient: User) -> List[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.patient_id == patient.id
        ).order_by(
            Appointment.appointment_date,
            Appointment.appointment_time,
            Appointment.token_number
        ).all()

    def get_active(self, patient: User) -> Optional[Appointment]:
        """First scheduled appointment of the patient, earliest first."""
        return self.db.query(Appointment).filter(
            Appointment.patient_id == patient.id,
            Appointment.status == AppointmentStatus.SCHEDULED
        ).order_by(
            Appointment.appointment_date,
            Appointment.appointment_time,
            Appointment.token_number
        ).first()

    def get_for_patient(self, patient: User, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.patient_id == patient.id
        ).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        return appointment

    def cancel(self, patient: User, appointment_id: int) -> Appointment:
        """Patient self-cancel. No version check guards against staff updates."""
        appointment = self.get_for_patient(patient, appointment_id)

        if not can_transition(appointment.status, AppointmentStatus.CANCELLED):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot cancel an appointment that is {AppointmentStatus(appointment.status).value}"
            )

        appointment.status = AppointmentStatus.CANCELLED
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to cancel appointment {appointment_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to cancel appointment: {_store_message(e)}"
            )

        self.db.refresh(appointment)
        logger.info(f"Patient {patient.id} cancelled appointment {appointment.id}")
        return appointment

    def _validate_selection(self, booking: AppointmentCreate):
        catalog = CatalogService(self.db)
        catalog.get_hospital(booking.hospital_id)

        department = catalog.get_department(booking.department_id)
        if department.hospital_id != booking.hospital_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Department does not belong to the selected hospital"
            )

        doctor = catalog.get_doctor(booking.doctor_id)
        if doctor.department_id != department.id or doctor.hospital_id != booking.hospital_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Doctor does not belong to the selected department"
            )
        if doctor.status != DoctorStatus.ACTIVE.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Doctor is not accepting appointments"
            )

        if booking.appointment_date < date.today():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Appointment date cannot be in the past"
            )
        if booking.appointment_time not in doctor_time_slots(doctor, booking.appointment_date):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected time is not available for this doctor"
            )
        return doctor

    def _estimate_wait(self, doctor_id: int, day: date, token_number: int) -> Optional[int]:
        # The live counter only says something about today's queue
        if day != date.today():
            return None
        queue_status = QueueService(self.db).get_status(doctor_id)
        if queue_status is None:
            return None
        return estimated_wait_minutes(tokens_ahead(token_number, queue_status.current_token))
