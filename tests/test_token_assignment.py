from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from smartqueue.models import AppointmentStatus
from smartqueue.services.token_service import TokenService
from tests.conftest import add_appointments

class TestTokenService:

    def test_first_token_of_the_day(self, db_session, catalog):
        assert TokenService(db_session).next_token(catalog["johnson"], date(2030, 1, 7)) == 1

    @pytest.mark.parametrize("existing", [1, 4, 12])
    def test_next_token_is_count_plus_one(self, db_session, catalog, existing):
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"],
                         date(2030, 1, 7), range(1, existing + 1))

        assert TokenService(db_session).next_token(catalog["johnson"], date(2030, 1, 7)) == existing + 1

    def test_fifth_booking_of_the_day_gets_token_five(self, db_session, catalog):
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"],
                         date(2025, 3, 10), [1, 2, 3, 4])

        assert TokenService(db_session).next_token(catalog["johnson"], "2025-03-10") == 5

    def test_cancelled_appointments_still_count(self, db_session, catalog):
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"],
                         date(2030, 1, 7), [1, 2], status=AppointmentStatus.CANCELLED)

        assert TokenService(db_session).next_token(catalog["johnson"], date(2030, 1, 7)) == 3

    def test_counts_are_per_doctor_and_date(self, db_session, catalog):
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"], date(2030, 1, 7), [1, 2, 3])
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"], date(2030, 1, 8), [1])
        add_appointments(db_session, 1, catalog["rodriguez"], catalog["mary"], date(2030, 1, 7), [1, 2])

        tokens = TokenService(db_session)
        assert tokens.next_token(catalog["johnson"], date(2030, 1, 7)) == 4
        assert tokens.next_token(catalog["johnson"], date(2030, 1, 8)) == 2
        assert tokens.next_token(catalog["rodriguez"], date(2030, 1, 7)) == 3
        assert tokens.next_token(catalog["patel"], date(2030, 1, 7)) == 1

    def test_count_failure_falls_back_to_random_token(self, db_session, monkeypatch):
        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT count", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "query", broken_query)
        tokens = TokenService(db_session)

        for _ in range(50):
            assert 1 <= tokens.next_token(1, date(2030, 1, 7)) <= 100

    def test_token_after_conflict_follows_highest(self, db_session, catalog):
        add_appointments(db_session, 1, catalog["johnson"], catalog["city"], date(2030, 1, 7), [1, 3, 57])

        assert TokenService(db_session).next_token_after_conflict(catalog["johnson"], date(2030, 1, 7)) == 58
