import pytest

from smartqueue.models import Appointment, AppointmentStatus
from smartqueue.schemas.queue import QueueStatusUpdate
from smartqueue.services.appointment_service import TERMINAL_STATUSES, can_transition
from smartqueue.services.queue_tracker import (
    QueueTracker, estimated_wait_minutes, is_near_turn, tokens_ahead
)

def make_appointment(token_number=45, doctor_id=1):
    return Appointment(id=10, patient_id=1, doctor_id=doctor_id, hospital_id=1, token_number=token_number)

def serving(current_token, doctor_id=1, is_active=True):
    return QueueStatusUpdate(doctor_id=doctor_id, current_token=current_token, is_active=is_active)

class TestEstimation:

    @pytest.mark.parametrize("ahead", [1, 2, 5, 40])
    def test_wait_is_three_minutes_per_patient(self, ahead):
        assert estimated_wait_minutes(ahead) == ahead * 3

    @pytest.mark.parametrize("ahead", [0, -1, -12])
    def test_no_wait_once_turn_has_come(self, ahead):
        assert estimated_wait_minutes(ahead) == 0

    def test_tokens_ahead(self):
        assert tokens_ahead(45, 40) == 5
        assert tokens_ahead(45, 45) == 0
        assert tokens_ahead(45, 50) == -5
        assert tokens_ahead(3, None) == 3

    @pytest.mark.parametrize("ahead,expected", [(0, False), (1, True), (3, True), (4, False), (-2, False)])
    def test_near_turn_window(self, ahead, expected):
        assert is_near_turn(ahead) is expected

class TestQueueTracker:

    def test_serving_counter_moves_from_40_to_43(self):
        tracker = QueueTracker(make_appointment(45), alert_once=False)

        before = tracker.update(serving(40))
        assert before.tokens_ahead == 5
        assert before.estimated_wait_minutes == 15
        assert before.near_turn_alert is False

        after = tracker.update(serving(43))
        assert after.tokens_ahead == 2
        assert after.estimated_wait_minutes == 6
        assert after.near_turn_alert is True
        assert tracker.position == after

    def test_alert_repeats_on_every_update_by_default(self):
        tracker = QueueTracker(make_appointment(45), alert_once=False)

        alerts = [tracker.update(serving(current)).near_turn_alert for current in (42, 43, 44)]
        assert alerts == [True, True, True]

    def test_alert_once_fires_on_entering_window(self):
        tracker = QueueTracker(make_appointment(45), alert_once=True)

        alerts = [tracker.update(serving(current)).near_turn_alert for current in (40, 42, 43, 44)]
        assert alerts == [False, True, False, False]

    def test_alert_once_rearms_after_leaving_window(self):
        tracker = QueueTracker(make_appointment(45), alert_once=True)

        # Counter corrected backwards by staff
        alerts = [tracker.update(serving(current)).near_turn_alert for current in (43, 30, 43)]
        assert alerts == [True, False, True]

    def test_your_turn(self):
        tracker = QueueTracker(make_appointment(45))

        position = tracker.update(serving(45))
        assert position.is_your_turn is True
        assert position.tokens_ahead == 0
        assert position.estimated_wait_minutes == 0
        assert position.near_turn_alert is False

    def test_missing_queue_row_counts_nothing_served(self):
        tracker = QueueTracker(make_appointment(7))

        position = tracker.update(None)
        assert position.current_token == 0
        assert position.tokens_ahead == 7
        assert position.estimated_wait_minutes == 21
        assert position.queue_active is False

    def test_null_current_token(self):
        position = QueueTracker(make_appointment(2)).update(serving(None))
        assert position.current_token == 0
        assert position.tokens_ahead == 2

    def test_custom_pace(self):
        tracker = QueueTracker(make_appointment(45), minutes_per_patient=5, threshold=1)

        position = tracker.update(serving(43))
        assert position.estimated_wait_minutes == 10
        assert position.near_turn_alert is False

    def test_rejects_other_doctors_queue(self):
        tracker = QueueTracker(make_appointment(45, doctor_id=1))

        with pytest.raises(ValueError):
            tracker.update(serving(40, doctor_id=2))

class TestAppointmentLifecycle:

    @pytest.mark.parametrize("target", [
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    ])
    def test_scheduled_can_move_on(self, target):
        assert can_transition(AppointmentStatus.SCHEDULED, target)

    def test_in_progress_can_finish_or_cancel(self):
        assert can_transition(AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED)
        assert can_transition(AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED)
        assert not can_transition(AppointmentStatus.IN_PROGRESS, AppointmentStatus.SCHEDULED)

    def test_terminal_states(self):
        assert TERMINAL_STATUSES == {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.RESCHEDULED,
        }
        for state in TERMINAL_STATUSES:
            for target in AppointmentStatus:
                assert not can_transition(state, target)

    def test_accepts_raw_status_values(self):
        assert can_transition("scheduled", AppointmentStatus.CANCELLED)
