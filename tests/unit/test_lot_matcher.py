"""
Tests for the FIFO lot matcher — pairing, remainders, expiration classification.

Source: tradeledger/models/lot_matcher.py
"""

import pytest

from tests.conftest import PAST_EXPIRY, TODAY, make_option_trade, make_trade
from tradeledger.models.expiration import ExpirationState
from tradeledger.models.lot_matcher import match_all, match_lots


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------

class TestFifoPairing:
    def test_buy_two_sell_one(self):
        """Buy 2 then sell 1 → one match of 1, one open long lot of 1"""
        trades = [
            make_option_trade(id=1, side="buy", quantity=2, price=1.0, executed_at="2025-03-03T10:00:00"),
            make_option_trade(id=2, side="sell", quantity=1, price=1.5, executed_at="2025-03-04T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert len(result.matches) == 1
        assert result.matches[0].quantity == 1
        assert result.matches[0].open_trade_id == 1
        assert result.matches[0].close_trade_id == 2
        assert len(result.open_lots) == 1
        assert result.open_lots[0].is_long
        assert result.open_lots[0].quantity == 1
        assert result.net_quantity == 1

    def test_oldest_lot_closes_first(self):
        trades = [
            make_trade(id=1, side="buy", price=10.0, executed_at="2025-03-03T10:00:00"),
            make_trade(id=2, side="buy", price=20.0, executed_at="2025-03-04T10:00:00"),
            make_trade(id=3, side="sell", price=30.0, executed_at="2025-03-05T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert result.matches[0].open_trade_id == 1
        assert result.matches[0].pnl == pytest.approx(20.0)
        assert [lot.trade_id for lot in result.open_lots] == [2]

    def test_short_lot_closed_by_buy(self):
        trades = [
            make_option_trade(id=1, side="sell", quantity=1, price=3.0, executed_at="2025-03-03T10:00:00"),
            make_option_trade(id=2, side="buy", quantity=1, price=1.0, executed_at="2025-03-04T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert len(result.matches) == 1
        match = result.matches[0]
        assert match.direction == "short"
        assert match.sell_total == pytest.approx(300.0)
        assert match.buy_total == pytest.approx(100.0)
        assert result.realized_pnl == pytest.approx(200.0)
        assert result.open_lots == []

    def test_partial_close_prorates_totals(self):
        trades = [
            make_trade(id=1, side="buy", quantity=4, price=10.0, executed_at="2025-03-03T10:00:00"),
            make_trade(id=2, side="sell", quantity=1, price=16.0, executed_at="2025-03-04T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert result.matches[0].buy_total == pytest.approx(10.0)
        assert result.matches[0].sell_total == pytest.approx(16.0)
        assert result.open_lots[0].quantity == 3
        assert result.open_lots[0].total == pytest.approx(30.0)

    def test_sell_through_flat_opens_short(self):
        trades = [
            make_trade(id=1, side="buy", quantity=1, executed_at="2025-03-03T10:00:00"),
            make_trade(id=2, side="sell", quantity=3, executed_at="2025-03-04T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert result.matched_quantity == 1
        assert result.open_lots[0].is_short
        assert result.open_lots[0].quantity == 2
        assert result.net_quantity == -2

    def test_every_trade_quantity_is_accounted_for(self):
        """matched + open quantity per trade equals the trade's own quantity"""
        trades = [
            make_trade(id=1, side="buy", quantity=3, executed_at="2025-03-03T10:00:00"),
            make_trade(id=2, side="buy", quantity=2, executed_at="2025-03-04T10:00:00"),
            make_trade(id=3, side="sell", quantity=4, executed_at="2025-03-05T10:00:00"),
            make_trade(id=4, side="buy", quantity=1, executed_at="2025-03-06T10:00:00"),
            make_trade(id=5, side="sell", quantity=5, executed_at="2025-03-07T10:00:00"),
            make_trade(id=6, side="buy", quantity=0.5, executed_at="2025-03-08T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        for trade in trades:
            accounted = sum(
                m.quantity for m in result.matches
                if trade.id in (m.open_trade_id, m.close_trade_id)
            )
            accounted += sum(lot.quantity for lot in result.open_lots if lot.trade_id == trade.id)
            assert accounted == pytest.approx(trade.quantity)

        bought = sum(t.quantity for t in trades if t.is_buy)
        sold = sum(t.quantity for t in trades if not t.is_buy)
        assert result.net_quantity == pytest.approx(bought - sold)


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------

class TestUnusableTrades:
    @pytest.mark.parametrize("quantity", [0, -1, float("nan"), float("inf"), None, "abc"])
    def test_unusable_quantity_is_skipped(self, quantity):
        trades = [
            make_trade(id=1, side="buy", quantity=1, total=100.0),
            make_trade(id=2, side="sell", quantity=quantity, total=120.0, executed_at="2025-03-04T10:00:00"),
        ]
        result = match_lots(trades, TODAY)

        assert result.matches == []
        assert [lot.trade_id for lot in result.open_lots] == [1]

    def test_nothing_usable(self):
        result = match_lots([make_trade(quantity=0)], TODAY)
        assert result.grouping_key is None
        assert result.matches == []
        assert result.open_lots == []


# ---------------------------------------------------------------------------
# Expiration classification
# ---------------------------------------------------------------------------

class TestOpenLotClassification:
    def test_past_expiration_is_pending(self):
        trade = make_option_trade(symbol="SPY250117C05000000", expiration_date=PAST_EXPIRY)
        lot = match_lots([trade], TODAY).open_lots[0]

        assert lot.status == ExpirationState.PENDING_EXPIRY.value
        assert lot.pnl_impact is None

    def test_future_expiration_is_open(self):
        lot = match_lots([make_option_trade()], TODAY).open_lots[0]
        assert lot.status == ExpirationState.OPEN.value

    def test_expired_long_loses_premium(self):
        trade = make_option_trade(side="buy", price=2.0, expired_worthless=True)
        result = match_lots([trade], TODAY)

        assert result.open_lots[0].status == ExpirationState.EXPIRED.value
        assert result.open_lots[0].pnl_impact == pytest.approx(-200.0)
        assert result.expired_pnl == pytest.approx(-200.0)

    def test_expired_short_keeps_premium(self):
        trade = make_option_trade(side="sell", price=1.5, expired_worthless=True)
        assert match_lots([trade], TODAY).open_lots[0].pnl_impact == pytest.approx(150.0)

    def test_flag_on_any_trade_expires_the_remainder(self):
        trades = [
            make_option_trade(id=1, side="buy", quantity=2, executed_at="2025-03-03T10:00:00"),
            make_option_trade(id=2, side="sell", quantity=1, executed_at="2025-03-04T10:00:00",
                              expired_worthless=True),
        ]
        result = match_lots(trades, TODAY)

        assert result.open_lots[0].status == ExpirationState.EXPIRED.value
        assert result.open_lots[0].pnl_impact == pytest.approx(-200.0)

    def test_stock_lot_stays_open(self):
        lot = match_lots([make_trade()], TODAY).open_lots[0]
        assert lot.status == ExpirationState.OPEN.value


class TestMatchAll:
    def test_keys_matched_independently(self):
        trades = [
            make_trade(id=1, symbol="AAPL", side="buy"),
            make_trade(id=2, symbol="MSFT", side="sell", executed_at="2025-03-04T10:00:00"),
        ]
        results = match_all(trades, TODAY)

        assert set(results) == {"AAPL|stock|1", "MSFT|stock|1"}
        assert all(r.matches == [] for r in results.values())
