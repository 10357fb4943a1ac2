from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import Optional
import logging

from ..models.appointment import Appointment
from ..models.queue_status import QueueStatus
from ..schemas.queue import QueuePosition, QueueStatusUpdate
from .queue_tracker import QueueTracker

logger = logging.getLogger(__name__)

class QueueService:
    """Reads doctors' currently-serving counters. Never writes them."""

    def __init__(self, db: Session):
        self.db = db

    def get_status(self, doctor_id: int) -> Optional[QueueStatus]:
        try:
            return self.db.query(QueueStatus).filter(
                QueueStatus.doctor_id == doctor_id
            ).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to load queue status for doctor {doctor_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Failed to load queue status"
            )

    def get_update(self, doctor_id: int) -> Optional[QueueStatusUpdate]:
        """Current row in the same shape change notifications deliver."""
        queue_status = self.get_status(doctor_id)
        if queue_status is None:
            return None
        return QueueStatusUpdate.model_validate(queue_status)

    def position_for(self, appointment: Appointment, tracker: Optional[QueueTracker] = None) -> QueuePosition:
        """Initial-load position of an appointment in its doctor's queue."""
        tracker = tracker or QueueTracker(appointment)
        return tracker.update(self.get_update(appointment.doctor_id))
