from typing import Optional

from ..core.config import settings
from ..models.appointment import Appointment
from ..schemas.queue import QueuePosition, QueueStatusUpdate

NEAR_TURN_MESSAGE = "Your turn is approaching"

def tokens_ahead(token_number: int, current_token: Optional[int]) -> int:
    """Tokens between the patient and the one being served.

    Zero or less means it is the patient's turn or it has passed.
    """
    return token_number - (current_token or 0)

def estimated_wait_minutes(ahead: int, minutes_per_patient: Optional[int] = None) -> int:
    if minutes_per_patient is None:
        minutes_per_patient = settings.MINUTES_PER_PATIENT
    return max(ahead, 0) * minutes_per_patient

def is_near_turn(ahead: int, threshold: Optional[int] = None) -> bool:
    if threshold is None:
        threshold = settings.NEAR_TURN_THRESHOLD
    return 0 < ahead <= threshold

class QueueTracker:
    """Derives a patient's queue position from currently-serving updates.

    With alert_once=False every update inside the near-turn window raises the
    alert again. With alert_once=True it is raised on entering the window and
    re-armed only after the position leaves it.
    """

    def __init__(
        self,
        appointment: Appointment,
        minutes_per_patient: Optional[int] = None,
        threshold: Optional[int] = None,
        alert_once: Optional[bool] = None,
    ):
        self.appointment_id = appointment.id
        self.doctor_id = appointment.doctor_id
        self.token_number = appointment.token_number
        self.minutes_per_patient = (
            settings.MINUTES_PER_PATIENT if minutes_per_patient is None else minutes_per_patient
        )
        self.threshold = settings.NEAR_TURN_THRESHOLD if threshold is None else threshold
        self.alert_once = settings.NEAR_TURN_ALERT_ONCE if alert_once is None else alert_once
        self._alerted = False
        self.position: Optional[QueuePosition] = None

    def update(self, queue_status: Optional[QueueStatusUpdate]) -> QueuePosition:
        """Recompute the position; a missing row counts as nothing served yet."""
        if queue_status is not None and queue_status.doctor_id != self.doctor_id:
            raise ValueError(
                f"Queue status for doctor {queue_status.doctor_id} "
                f"does not belong to doctor {self.doctor_id}"
            )

        current_token = (queue_status.current_token if queue_status else None) or 0
        ahead = tokens_ahead(self.token_number, current_token)

        near_turn = is_near_turn(ahead, self.threshold)
        alert = near_turn and not (self.alert_once and self._alerted)
        self._alerted = near_turn and (self._alerted or alert)

        self.position = QueuePosition(
            appointment_id=self.appointment_id,
            doctor_id=self.doctor_id,
            token_number=self.token_number,
            current_token=current_token,
            tokens_ahead=ahead,
            estimated_wait_minutes=estimated_wait_minutes(ahead, self.minutes_per_patient),
            is_your_turn=ahead <= 0,
            near_turn_alert=alert,
            queue_active=bool(queue_status.is_active) if queue_status else False,
        )
        return self.position
