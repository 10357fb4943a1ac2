from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Time, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class DoctorStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)

    name = Column(String(200), nullable=False)
    specialization = Column(String(100), nullable=False)
    status = Column(String(20), default=DoctorStatus.ACTIVE.value, nullable=False)

    # Working schedule
    availability_start = Column(Time, nullable=True)
    availability_end = Column(Time, nullable=True)
    working_days = Column(JSON, nullable=True)  # ISO weekdays, 1 = Monday

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    hospital = relationship("Hospital", back_populates="doctors")
    department = relationship("Department", back_populates="doctors")
    appointments = relationship("Appointment", back_populates="doctor")
    queue_status = relationship("QueueStatus", back_populates="doctor", uselist=False)

    def __repr__(self):
        return f"<Doctor(id={self.id}, name='{self.name}', specialization='{self.specialization}')>"
