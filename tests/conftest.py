"""
Shared pytest fixtures and trade factory helpers for Trade Ledger tests.

Each test gets a fresh temporary SQLite database (auto-cleaned by pytest).
"""

import pytest
from datetime import date

from tradeledger.database.db_manager import DatabaseManager
from tradeledger.models.trade import TradeRecord, parse_date, parse_datetime
from tradeledger.pipeline.position_reconciler import PositionReconciler
from tradeledger.services import (
    account_service,
    backup_service,
    import_service,
    position_service,
    stats_service,
    trade_service,
)

# Reference date for expiration classification in tests
TODAY = date(2026, 3, 1)

PAST_EXPIRY = "2025-01-17"
FUTURE_EXPIRY = "2030-01-18"

SERVICE_MODULES = (
    account_service,
    backup_service,
    import_service,
    position_service,
    stats_service,
    trade_service,
)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db(tmp_path):
    """Temporary SQLite database, fully initialized and auto-cleaned."""
    db_manager = DatabaseManager(db_url=f"sqlite:///{tmp_path / 'test.db'}")
    db_manager.initialize_database()
    yield db_manager
    db_manager.close()


@pytest.fixture
def reconciler(db):
    return PositionReconciler(db, today=TODAY)


@pytest.fixture
def services(db, reconciler, monkeypatch):
    """Point every service module at the temporary database."""
    for module in SERVICE_MODULES:
        monkeypatch.setattr(module, "db", db)
        if hasattr(module, "reconciler"):
            monkeypatch.setattr(module, "reconciler", reconciler)
    return db


# ---------------------------------------------------------------------------
# Trade factory helpers
# ---------------------------------------------------------------------------

def make_trade(
    *,
    id=1,
    account_id=1,
    symbol="AAPL",
    asset_type="stock",
    side="buy",
    quantity=1,
    price=100.0,
    total=None,
    fees=0.0,
    executed_at="2025-03-03T10:00:00",
    expiration_date=None,
    expired_worthless=False,
    review=0,
):
    """Build an in-memory TradeRecord for the pure matching functions."""
    return TradeRecord(
        id=id,
        account_id=account_id,
        symbol=symbol,
        asset_type=asset_type,
        side=side,
        quantity=quantity,
        price=price,
        total=total if total is not None else price * quantity,
        fees=fees,
        executed_at=parse_datetime(executed_at),
        expiration_date=parse_date(expiration_date),
        expired_worthless=expired_worthless,
        review=review,
    )


def make_option_trade(*, symbol="SPY300118C05000000", price=2.0, quantity=1, total=None, **kwargs):
    """Build an option TradeRecord; total is premium x 100 per contract."""
    return make_trade(
        symbol=symbol,
        asset_type="option",
        price=price,
        quantity=quantity,
        total=total if total is not None else price * quantity * 100,
        **kwargs,
    )


def trade_row(
    *,
    broker_trade_id=None,
    symbol="AAPL",
    asset_type="stock",
    side="buy",
    quantity=1,
    price=100.0,
    total=None,
    fees=0.0,
    executed_at="2025-03-03T10:00:00",
    expiration_date=None,
):
    """Build a normalized trade dict as the import layer hands it over."""
    multiplier = 100 if asset_type == "option" else 1
    return {
        "broker_trade_id": broker_trade_id,
        "symbol": symbol,
        "asset_type": asset_type,
        "side": side,
        "quantity": quantity,
        "price": price,
        "total": total if total is not None else price * quantity * multiplier,
        "fees": fees,
        "executed_at": executed_at,
        "expiration_date": expiration_date,
    }


def option_row(*, symbol="SPY300118C05000000", expiration_date=FUTURE_EXPIRY, **kwargs):
    return trade_row(symbol=symbol, asset_type="option", expiration_date=expiration_date, **kwargs)


def insert_trades(db, rows, broker="webull", nickname=None):
    """Insert rows for one account and return the new trade ids in order."""
    account = db.get_or_create_account(broker, nickname)
    inserted_ids, _ = db.save_trades(account["id"], rows)
    return inserted_ids
