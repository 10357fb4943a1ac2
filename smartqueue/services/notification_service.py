from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import List, Optional
import logging

from ..models.appointment import Appointment
from ..models.notification import Notification
from ..models.user import User
from ..schemas.queue import QueuePosition
from .queue_tracker import NEAR_TURN_MESSAGE

logger = logging.getLogger(__name__)

NEAR_TURN_TYPE = "queue_alert"

class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def record_near_turn(self, appointment: Appointment, position: QueuePosition) -> Optional[Notification]:
        """Store a near-turn alert. A store failure is logged and the alert
        is still delivered, so None is returned instead of raising.
        """
        ahead = position.tokens_ahead
        notification = Notification(
            user_id=appointment.patient_id,
            appointment_id=appointment.id,
            message=(
                f"{NEAR_TURN_MESSAGE}: {ahead} "
                f"{'person' if ahead == 1 else 'people'} ahead of token {position.token_number}"
            ),
            type=NEAR_TURN_TYPE,
        )
        self.db.add(notification)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store near-turn alert for appointment {position.appointment_id}: {e}")
            return None
        self.db.refresh(notification)
        logger.info(f"Near-turn alert for appointment {appointment.id}, {ahead} ahead")
        return notification

    def list_for_user(self, user: User, unread_only: bool = False) -> List[Notification]:
        notifications = self.db.query(Notification).filter(Notification.user_id == user.id)
        if unread_only:
            notifications = notifications.filter(Notification.read == False)  # noqa: E712
        return notifications.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def mark_read(self, user: User, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user.id
        ).first()
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
