from sqlalchemy import Column, Integer, ForeignKey, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class QueueStatus(Base):
    """Currently-serving counter for one doctor.

    Rows are advanced by the hospital staff tooling; this service only
    reads them and listens for their change notifications.
    """
    __tablename__ = "queue_status"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), unique=True, nullable=False)
    current_token = Column(Integer, nullable=True, default=0)
    is_active = Column(Boolean, default=True)
    last_updated = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("Doctor", back_populates="queue_status")

    def __repr__(self):
        return f"<QueueStatus(doctor_id={self.doctor_id}, current_token={self.current_token})>"
