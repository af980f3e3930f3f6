"""
FIFO Lot Matcher — per-contract buy/sell lot pairing.

Implements lot-based matching for one grouping key: incoming buys close open
short lots oldest-first, incoming sells close open long lots oldest-first, and
any leftover quantity opens a new lot.  Used for ad hoc per-contract metrics;
persisted positions come from the round-trip segmenter instead.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional
import logging

from tradeledger.models.expiration import ExpirationState, expiration_for, resolve_expiration
from tradeledger.models.grouping import group_by_key, grouping_key
from tradeledger.models.trade import TradeRecord, trade_sort_key

logger = logging.getLogger(__name__)

QTY_EPSILON = 1e-9


@dataclass
class OpenLot:
    """Unmatched remainder of a single trade"""
    trade_id: int
    direction: str             # long (opened by a buy) or short (opened by a sell)
    quantity: float            # remaining quantity
    original_quantity: float
    original_total: float
    opened_at: datetime
    status: str = ExpirationState.OPEN.value
    pnl_impact: Optional[float] = None  # set only when finalized as expired

    @property
    def total(self) -> float:
        """Remaining notional, prorated from the opening trade."""
        return _prorate(self.quantity, self.original_quantity, self.original_total)

    @property
    def is_long(self) -> bool:
        return self.direction == 'long'

    @property
    def is_short(self) -> bool:
        return self.direction == 'short'


@dataclass
class LotMatch:
    """A closed pairing of one buy slice against one sell slice"""
    open_trade_id: int
    close_trade_id: int
    direction: str             # long: buy then sell; short: sell then buy
    quantity: float
    buy_total: float
    sell_total: float
    opened_at: datetime
    closed_at: datetime

    @property
    def pnl(self) -> float:
        return self.sell_total - self.buy_total


@dataclass
class MatchResult:
    grouping_key: Optional[str]
    matches: List[LotMatch] = field(default_factory=list)
    open_lots: List[OpenLot] = field(default_factory=list)
    expiration_date: Optional[date] = None

    @property
    def realized_pnl(self) -> float:
        return sum(m.pnl for m in self.matches)

    @property
    def expired_pnl(self) -> float:
        return sum(lot.pnl_impact for lot in self.open_lots if lot.pnl_impact is not None)

    @property
    def matched_quantity(self) -> float:
        return sum(m.quantity for m in self.matches)

    @property
    def open_quantity(self) -> float:
        return sum(lot.quantity for lot in self.open_lots)

    @property
    def net_quantity(self) -> float:
        """Positive when net long, negative when net short."""
        return sum(lot.quantity if lot.is_long else -lot.quantity for lot in self.open_lots)


def _prorate(quantity: float, original_quantity: float, original_total: float) -> float:
    if original_quantity == 0:
        return 0.0
    return quantity / original_quantity * original_total


def match_lots(trades: Iterable[TradeRecord], today: Optional[date] = None) -> MatchResult:
    """FIFO-match all trades of ONE grouping key.

    Args:
        trades: Trades sharing a grouping key, in any order (sorted here by
                execution time, buys before sells on ties)
        today: Reference date for expiration classification

    Returns:
        MatchResult with closed matches and the classified open remainder.
        Trades with zero, negative or non-finite quantity are skipped.
    """
    ordered = []
    for trade in sorted(trades, key=trade_sort_key):
        if not trade.has_usable_quantity:
            logger.debug(f"Skipping trade {trade.id}: unusable quantity {trade.quantity!r}")
            continue
        ordered.append(trade)

    if not ordered:
        return MatchResult(grouping_key=None)

    key = grouping_key(ordered[0])
    result = MatchResult(grouping_key=key)

    open_longs: Deque[OpenLot] = deque()
    open_shorts: Deque[OpenLot] = deque()

    for trade in ordered:
        qty = float(trade.quantity)
        total = abs(float(trade.total))
        remaining = qty

        # Buy closes shorts, sell closes longs
        queue = open_shorts if trade.is_buy else open_longs

        while remaining > QTY_EPSILON and queue:
            lot = queue[0]
            close_amount = min(lot.quantity, remaining)

            lot_slice = _prorate(close_amount, lot.original_quantity, lot.original_total)
            trade_slice = _prorate(close_amount, qty, total)

            if trade.is_buy:
                buy_total, sell_total = trade_slice, lot_slice
            else:
                buy_total, sell_total = lot_slice, trade_slice

            result.matches.append(LotMatch(
                open_trade_id=lot.trade_id,
                close_trade_id=trade.id,
                direction=lot.direction,
                quantity=close_amount,
                buy_total=buy_total,
                sell_total=sell_total,
                opened_at=lot.opened_at,
                closed_at=trade.executed_at,
            ))

            lot.quantity -= close_amount
            remaining -= close_amount
            if lot.quantity <= QTY_EPSILON:
                queue.popleft()

        if remaining > QTY_EPSILON:
            new_lot = OpenLot(
                trade_id=trade.id,
                direction='long' if trade.is_buy else 'short',
                quantity=remaining,
                original_quantity=qty,
                original_total=total,
                opened_at=trade.executed_at,
            )
            (open_longs if trade.is_buy else open_shorts).append(new_lot)

    result.open_lots = list(open_longs) + list(open_shorts)
    result.open_lots.sort(key=lambda lot: lot.opened_at)

    # Classify whatever is still open
    first = ordered[0]
    stored = next((t.expiration_date for t in ordered if t.expiration_date), None)
    result.expiration_date = expiration_for(first.symbol, first.asset_type, stored)
    flagged = any(t.expired_worthless for t in ordered)

    for lot in result.open_lots:
        state = resolve_expiration(first.asset_type, result.expiration_date, flagged, today)
        lot.status = state.value
        if state is ExpirationState.EXPIRED:
            # Long expires worthless: full loss; short: premium kept
            lot.pnl_impact = -lot.total if lot.is_long else lot.total

    logger.debug(f"{key}: {len(result.matches)} matches, {len(result.open_lots)} open lots")
    return result


def match_all(trades: Iterable[TradeRecord], today: Optional[date] = None) -> Dict[str, MatchResult]:
    """FIFO-match every grouping key present in ``trades``."""
    return {
        key: match_lots(bucket, today)
        for key, bucket in group_by_key(trades).items()
    }
