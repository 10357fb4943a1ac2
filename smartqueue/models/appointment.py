from sqlalchemy import (
    Column, Integer, ForeignKey, DateTime, Date, Time, Text,
    UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One token per doctor per day; concurrent bookings retry on conflict
        UniqueConstraint(
            "doctor_id", "appointment_date", "token_number",
            name="uq_appointments_doctor_date_token"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)

    # Appointment details
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    token_number = Column(Integer, nullable=False)
    status = Column(
        SQLEnum(AppointmentStatus, values_callable=lambda e: [m.value for m in e]),
        default=AppointmentStatus.SCHEDULED,
        nullable=False
    )
    estimated_wait_time = Column(Integer, nullable=True)  # minutes
    notes = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, "
            f"date='{self.appointment_date}', token={self.token_number})>"
        )
