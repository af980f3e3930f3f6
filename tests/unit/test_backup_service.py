"""
Tests for JSON backup export and restore.

Source: tradeledger/services/backup_service.py
"""

import pytest

from tests.conftest import trade_row
from tradeledger.services import backup_service, position_service, trade_service


def _legacy_trade(id, side, price, executed_at, import_id=None):
    return {
        "id": id, "account_id": 1, "broker_trade_id": f"L-{id}", "symbol": "AAPL",
        "asset_type": "stock", "side": side, "quantity": 1, "price": price, "total": price,
        "fees": None, "executed_at": executed_at, "expiration_date": None,
        "review": None, "import_id": import_id,
    }


class TestExport:
    def test_export_shape(self, services):
        trade_service.import_trades("webull", [trade_row(), trade_row(side="sell", price=110.0)])
        position_service.create_why_option("Earnings")

        backup = backup_service.export_all_data()

        assert backup["version"] == 2
        data = backup["data"]
        assert len(data["accounts"]) == 1
        assert len(data["imports"]) == 1
        assert len(data["trades"]) == 2
        assert len(data["positions"]) == 1
        assert len(data["position_trades"]) == 2
        assert data["why_options"][0]["label"] == "Earnings"


class TestRestore:
    def test_restore_replaces_everything(self, services):
        trade_service.import_trades("webull", [trade_row(), trade_row(side="sell", price=110.0)])
        ids = [t["id"] for t in trade_service.get_trades()]
        named = position_service.create_position("Keep me", ids, why="Earnings")
        backup = backup_service.export_all_data()

        trade_service.delete_all_trades()
        trade_service.import_trades("robinhood", [trade_row(symbol="TSLA")])

        restored = backup_service.restore_backup(backup)

        assert restored["trades"] == 2
        assert restored["positions"] == 1
        assert sorted(t["symbol"] for t in trade_service.get_trades()) == ["AAPL", "AAPL"]
        position = position_service.get_position(named["id"])
        assert position["name"] == "Keep me"
        assert position["why"] == "Earnings"
        assert sorted(position["trade_ids"]) == sorted(ids)

    def test_restored_ids_do_not_collide_with_new_rows(self, services):
        trade_service.import_trades("webull", [trade_row(broker_trade_id="A")])
        backup = backup_service.export_all_data()
        backup_service.restore_backup(backup)

        result = trade_service.import_trades("webull", [trade_row(broker_trade_id="B")])
        assert result["trades_imported"] == 1

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {},
        {"version": 2},
        {"version": 2, "data": []},
        {"data": {"trades": []}},
    ])
    def test_invalid_format(self, services, payload):
        with pytest.raises(ValueError):
            backup_service.restore_backup(payload)

    def test_legacy_strategies_become_named_positions(self, services):
        backup = {
            "version": 1,
            "data": {
                "accounts": [{"id": 1, "broker": "webull", "nickname": None}],
                "imports": [],
                "trades": [
                    _legacy_trade(1, "buy", 100.0, "2025-03-03T10:00:00", import_id=42),
                    _legacy_trade(2, "sell", 120.0, "2025-03-04T10:00:00"),
                    _legacy_trade(3, "buy", 90.0, "2025-03-05T10:00:00"),
                ],
                "strategies": [{"id": 7, "name": "Wheel", "notes": "from v1"}],
                "strategyTrades": [
                    {"strategy_id": 7, "trade_id": 1},
                    {"strategy_id": 7, "trade_id": 2},
                ],
            },
        }
        restored = backup_service.restore_backup(backup)

        assert restored["positions"] == 1
        assert restored["simple_positions"] == 1

        wheel = position_service.get_position(7)
        assert wheel["name"] == "Wheel"
        assert wheel["trade_ids"] == [1, 2]
        assert wheel["stored_status"] == "closed"
        assert trade_service.get_trade(1)["import_id"] is None
        assert trade_service.get_trade(1)["review"] == 0
        assert position_service.get_grouped_trade_ids() == [1, 2, 3]
