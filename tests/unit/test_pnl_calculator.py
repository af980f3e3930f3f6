"""
Tests for position metrics — totals, P&L, status and expiration legs.

Source: tradeledger/models/pnl_calculator.py
"""

import pytest

from tests.conftest import PAST_EXPIRY, TODAY, make_option_trade, make_trade
from tradeledger.models.pnl_calculator import build_contract_groups, calculate_position_metrics


class TestClosedPositions:
    def test_simple_stock_round_trip(self):
        """Buy 1 AAPL @100, sell 1 @120 → pnl 20, pnl% 20"""
        trades = [
            make_trade(id=1, side="buy", price=100.0),
            make_trade(id=2, side="sell", price=120.0, executed_at="2025-03-04T10:00:00"),
        ]
        metrics = calculate_position_metrics(trades, TODAY)

        assert metrics["status"] == "closed"
        assert metrics["total_buy"] == pytest.approx(100.0)
        assert metrics["total_sell"] == pytest.approx(120.0)
        assert metrics["pnl"] == pytest.approx(20.0)
        assert metrics["pnl_percent"] == pytest.approx(20.0)
        assert metrics["realized_pnl"] == pytest.approx(20.0)
        assert metrics["symbols"] == ["AAPL"]
        assert metrics["legs"] == 2

    def test_vertical_spread(self):
        """Two legs of one underlying, both closed"""
        trades = [
            make_option_trade(id=1, symbol="SPY300118C05000000", side="buy", price=5.0),
            make_option_trade(id=2, symbol="SPY300118C05100000", side="sell", price=2.0),
            make_option_trade(id=3, symbol="SPY300118C05000000", side="sell", price=7.0,
                              executed_at="2025-03-10T10:00:00"),
            make_option_trade(id=4, symbol="SPY300118C05100000", side="buy", price=3.0,
                              executed_at="2025-03-10T10:00:00"),
        ]
        metrics = calculate_position_metrics(trades, TODAY)

        assert metrics["status"] == "closed"
        assert metrics["symbols"] == ["SPY"]
        assert metrics["total_buy"] == pytest.approx(800.0)
        assert metrics["total_sell"] == pytest.approx(900.0)
        assert metrics["pnl"] == pytest.approx(100.0)
        assert len(build_contract_groups(trades, TODAY)) == 2

    def test_credit_only_position_has_no_percent(self):
        trades = [make_option_trade(side="sell", price=1.0, expired_worthless=True)]
        metrics = calculate_position_metrics(trades, TODAY)

        assert metrics["pnl"] == pytest.approx(100.0)
        assert metrics["pnl_percent"] is None


class TestOpenPositions:
    def test_open_position_has_no_pnl(self):
        metrics = calculate_position_metrics([make_trade(side="buy")], TODAY)

        assert metrics["status"] == "open"
        assert metrics["pnl"] is None
        assert metrics["pnl_percent"] is None
        assert metrics["total_buy"] == pytest.approx(100.0)

    def test_pending_expiry_leg(self):
        trade = make_option_trade(id=7, symbol="SPY250117C05000000", expiration_date=PAST_EXPIRY)
        metrics = calculate_position_metrics([trade], TODAY)

        assert metrics["status"] == "pending_expiry"
        assert metrics["has_pending_expiry"] is True
        assert metrics["pnl"] is None
        leg = metrics["pending_expiry_legs"][0]
        assert leg["display_symbol"] == "SPY"
        assert leg["type"] == "long"
        assert leg["quantity"] == 1
        assert leg["expiration_date"] == PAST_EXPIRY
        assert leg["trade_ids"] == [7]

    def test_one_leg_open_keeps_position_open(self):
        trades = [
            make_option_trade(id=1, symbol="SPY300118C05000000", side="buy"),
            make_option_trade(id=2, symbol="SPY300118C05000000", side="sell",
                              executed_at="2025-03-04T10:00:00"),
            make_option_trade(id=3, symbol="SPY300118C05100000", side="sell"),
        ]
        metrics = calculate_position_metrics(trades, TODAY)

        assert metrics["status"] == "open"
        assert metrics["pnl"] is None
        assert metrics["realized_pnl"] == pytest.approx(0.0)


class TestExpiredPositions:
    def test_expired_long_realizes_full_loss(self):
        metrics = calculate_position_metrics([make_option_trade(price=2.0, expired_worthless=True)], TODAY)

        assert metrics["status"] == "expired"
        assert metrics["has_expired_legs"] is True
        assert metrics["pnl"] == pytest.approx(-200.0)
        assert metrics["pnl_percent"] == pytest.approx(-100.0)
        assert metrics["expired_legs"][0]["pnl_impact"] == pytest.approx(-200.0)

    def test_expired_with_pending_sibling_is_pending(self):
        trades = [
            make_option_trade(id=1, symbol="SPY300118C05000000", expired_worthless=True),
            make_option_trade(id=2, symbol="SPY250117C05000000", expiration_date=PAST_EXPIRY),
        ]
        metrics = calculate_position_metrics(trades, TODAY)

        assert metrics["status"] == "pending_expiry"
        assert metrics["has_expired_legs"] is True
        assert metrics["pnl"] is None


class TestMisc:
    def test_empty(self):
        metrics = calculate_position_metrics([], TODAY)
        assert metrics["status"] == "empty"
        assert metrics["legs"] == 0
        assert metrics["pnl"] is None

    def test_review_status_is_highest_member(self):
        trades = [
            make_trade(id=1, review=2),
            make_trade(id=2, side="sell", review=1, executed_at="2025-03-04T10:00:00"),
        ]
        assert calculate_position_metrics(trades, TODAY)["review_status"] == 2

    def test_negative_totals_treated_as_magnitudes(self):
        trades = [
            make_trade(id=1, side="buy", total=-100.0),
            make_trade(id=2, side="sell", total=120.0, executed_at="2025-03-04T10:00:00"),
        ]
        metrics = calculate_position_metrics(trades, TODAY)
        assert metrics["pnl"] == pytest.approx(20.0)
