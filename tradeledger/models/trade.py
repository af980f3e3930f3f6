"""
Trade records for the matching engine.

The engine (grouping, FIFO matching, round-trip segmentation, metrics) works
on plain ``TradeRecord`` dataclasses rather than ORM rows, so every algorithm
below the reconciler is a pure function of its inputs.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, date
from typing import Optional, Tuple

import pytz

logger = logging.getLogger(__name__)

ASSET_TYPES = ("stock", "option", "future")
SIDES = ("buy", "sell")


@dataclass
class TradeRecord:
    """A single normalized execution"""
    id: int
    account_id: int
    symbol: str
    asset_type: str            # stock, option, future
    side: str                  # buy, sell
    quantity: float
    price: float
    total: float               # notional, already x100 for options
    executed_at: datetime
    fees: float = 0.0
    expiration_date: Optional[date] = None
    review: int = 0
    expired_worthless: bool = False
    broker_trade_id: Optional[str] = None

    @property
    def is_buy(self) -> bool:
        return self.side == "buy"

    @property
    def is_option(self) -> bool:
        return self.asset_type == "option"

    @property
    def has_usable_quantity(self) -> bool:
        try:
            qty = float(self.quantity)
        except (TypeError, ValueError):
            return False
        return math.isfinite(qty) and qty > 0

    @classmethod
    def from_orm(cls, row) -> "TradeRecord":
        """Convert a ``tradeledger.database.models.Trade`` row."""
        return cls(
            id=row.id,
            account_id=row.account_id,
            symbol=row.symbol,
            asset_type=row.asset_type,
            side=row.side,
            quantity=row.quantity,
            price=row.price,
            total=row.total,
            fees=row.fees or 0.0,
            executed_at=parse_datetime(row.executed_at),
            expiration_date=parse_date(row.expiration_date),
            review=row.review or 0,
            expired_worthless=bool(row.expired_worthless),
            broker_trade_id=row.broker_trade_id,
        )


def trade_sort_key(trade: TradeRecord) -> Tuple[datetime, int, int]:
    """Execution time ascending, buys before sells on ties, then id."""
    return (trade.executed_at, 0 if trade.is_buy else 1, trade.id or 0)


def parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    # Ledger times are naive UTC; offsets are converted, not dropped
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.UTC).replace(tzinfo=None)
    return parsed


def parse_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        logger.debug("Unparseable expiration date %r", value)
        return None
