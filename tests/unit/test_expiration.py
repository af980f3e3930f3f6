"""
Tests for the expiration resolver.

Source: tradeledger/models/expiration.py
"""

from datetime import date, datetime

from tests.conftest import TODAY
from tradeledger.models.expiration import ExpirationState, expiration_for, resolve_expiration


class TestResolveExpiration:
    def test_manual_flag_wins(self):
        assert resolve_expiration("option", date(2030, 1, 18), True, TODAY) is ExpirationState.EXPIRED
        assert resolve_expiration("stock", None, True, TODAY) is ExpirationState.EXPIRED

    def test_past_expiration_is_pending(self):
        assert resolve_expiration("option", date(2026, 2, 27), False, TODAY) is ExpirationState.PENDING_EXPIRY

    def test_expiration_day_itself_is_pending(self):
        assert resolve_expiration("option", TODAY, False, TODAY) is ExpirationState.PENDING_EXPIRY

    def test_future_expiration_is_open(self):
        assert resolve_expiration("option", date(2026, 3, 20), False, TODAY) is ExpirationState.OPEN

    def test_datetime_expiration_ignores_time_of_day(self):
        exp = datetime(2026, 3, 1, 23, 59)
        assert resolve_expiration("option", exp, False, TODAY) is ExpirationState.PENDING_EXPIRY

    def test_day_before_expiration_is_open(self):
        assert resolve_expiration("option", date(2026, 3, 2), False, TODAY) is ExpirationState.OPEN

    def test_non_option_never_pending(self):
        assert resolve_expiration("stock", date(2020, 1, 1), False, TODAY) is ExpirationState.OPEN

    def test_missing_expiration_is_open(self):
        assert resolve_expiration("option", None, False, TODAY) is ExpirationState.OPEN


class TestExpirationFor:
    def test_stored_date_wins(self):
        stored = date(2026, 1, 9)
        assert expiration_for("SPXW260107P06920000", "option", stored) == stored

    def test_decoded_from_symbol(self):
        assert expiration_for("SPXW260107P06920000", "option", None) == date(2026, 1, 7)

    def test_unparseable_option(self):
        assert expiration_for("NOT-OCC", "option", None) is None

    def test_non_option(self):
        assert expiration_for("AAPL", "stock", date(2026, 1, 9)) is None
