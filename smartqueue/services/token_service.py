from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from datetime import date
from typing import Union
import logging
import random

from ..core.config import settings
from ..models.appointment import Appointment

logger = logging.getLogger(__name__)

def _as_date(value: Union[date, str]) -> date:
    if isinstance(value, str):
        return date.fromisoformat(value)  # YYYY-MM-DD
    return value

class TokenService:
    """Queue token numbers for a doctor's day."""

    def __init__(self, db: Session):
        self.db = db

    def next_token(self, doctor_id: int, appointment_date: Union[date, str]) -> int:
        """Return the number of appointments booked for the doctor on that
        date (any status) plus one.

        If the count query fails the booking is not blocked: a random token in
        [1, TOKEN_FALLBACK_MAX] is returned instead. The unique constraint on
        (doctor, date, token) still rejects a colliding insert, so the caller
        retries with next_token_after_conflict().
        """
        appointment_date = _as_date(appointment_date)
        try:
            count = self.db.query(func.count(Appointment.id)).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == appointment_date
            ).scalar()
        except SQLAlchemyError as e:
            self.db.rollback()
            fallback = random.randint(1, settings.TOKEN_FALLBACK_MAX)
            logger.warning(
                f"Token count failed for doctor {doctor_id} on {appointment_date}, "
                f"using fallback token {fallback}: {e}"
            )
            return fallback

        return (count or 0) + 1

    def next_token_after_conflict(self, doctor_id: int, appointment_date: Union[date, str]) -> int:
        """Token following the highest one already taken that day."""
        appointment_date = _as_date(appointment_date)
        highest = self.db.query(func.max(Appointment.token_number)).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date
        ).scalar()
        return (highest or 0) + 1
