"""
Metrics Calculator — on-demand P&L for an arbitrary set of trades.

Trades are bucketed into ContractGroups by grouping key and each group is
FIFO-matched.  P&L is only reported once every group is flat or explicitly
expired; anything still open or awaiting an expiration decision leaves the
position's P&L undefined.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional
import logging

from tradeledger.models.expiration import ExpirationState
from tradeledger.models.grouping import group_by_key
from tradeledger.models.lot_matcher import MatchResult, match_lots
from tradeledger.models.trade import TradeRecord
from tradeledger.utils.option_symbol import display_symbol

logger = logging.getLogger(__name__)


@dataclass
class ContractGroup:
    """Ephemeral per-key aggregate, never persisted"""
    grouping_key: str
    symbol: str
    asset_type: str
    trades: List[TradeRecord] = field(default_factory=list)
    match: Optional[MatchResult] = None

    @property
    def display_symbol(self) -> str:
        return display_symbol(self.symbol, self.asset_type)

    @property
    def trade_ids(self) -> List[int]:
        return [t.id for t in self.trades]

    @property
    def buy_total(self) -> float:
        return sum(abs(t.total) for t in self.trades if t.is_buy)

    @property
    def sell_total(self) -> float:
        return sum(abs(t.total) for t in self.trades if not t.is_buy)

    @property
    def open_lots(self):
        return self.match.open_lots if self.match else []

    def lots_in_state(self, state: ExpirationState):
        return [lot for lot in self.open_lots if lot.status == state.value]


def build_contract_groups(trades: Iterable[TradeRecord], today: Optional[date] = None) -> List[ContractGroup]:
    groups = []
    for key, bucket in group_by_key(trades).items():
        first = bucket[0]
        group = ContractGroup(grouping_key=key, symbol=first.symbol, asset_type=first.asset_type, trades=bucket)
        group.match = match_lots(bucket, today)
        groups.append(group)
    return groups


def _leg_summary(group: ContractGroup, lots) -> Dict[str, Any]:
    long_qty = sum(lot.quantity for lot in lots if lot.is_long)
    short_qty = sum(lot.quantity for lot in lots if lot.is_short)
    expiration = group.match.expiration_date if group.match else None
    return {
        'symbol': group.symbol,
        'display_symbol': group.display_symbol,
        'type': 'long' if long_qty >= short_qty else 'short',
        'quantity': abs(long_qty - short_qty),
        'expiration_date': expiration.isoformat() if expiration else None,
        'trade_ids': group.trade_ids,
    }


def calculate_position_metrics(trades: Iterable[TradeRecord], today: Optional[date] = None) -> Dict[str, Any]:
    """Compute totals, status and expiration detail for a set of trades.

    Returns:
        Dict with total_buy, total_sell, pnl, pnl_percent, realized_pnl,
        status, symbols, legs, expired_legs, pending_expiry_legs,
        has_expired_legs, has_pending_expiry and review_status.
    """
    trades = list(trades)
    if not trades:
        return {
            'total_buy': 0.0,
            'total_sell': 0.0,
            'pnl': None,
            'pnl_percent': None,
            'realized_pnl': 0.0,
            'status': 'empty',
            'symbols': [],
            'legs': 0,
            'expired_legs': [],
            'pending_expiry_legs': [],
            'has_expired_legs': False,
            'has_pending_expiry': False,
            'review_status': 0,
        }

    groups = build_contract_groups(trades, today)

    total_buy = 0.0
    total_sell = 0.0
    realized = 0.0
    all_settled = True
    symbols: List[str] = []
    expired_legs = []
    pending_legs = []

    for group in groups:
        if group.display_symbol not in symbols:
            symbols.append(group.display_symbol)

        total_buy += group.buy_total
        total_sell += group.sell_total
        realized += group.match.realized_pnl

        expired = group.lots_in_state(ExpirationState.EXPIRED)
        pending = group.lots_in_state(ExpirationState.PENDING_EXPIRY)
        still_open = group.lots_in_state(ExpirationState.OPEN)

        if expired:
            leg = _leg_summary(group, expired)
            leg['pnl_impact'] = sum(lot.pnl_impact for lot in expired)
            expired_legs.append(leg)
        if pending:
            pending_legs.append(_leg_summary(group, pending))
            all_settled = False
        if still_open:
            all_settled = False

    pnl = None
    pnl_percent = None
    status = 'open'

    if all_settled:
        pnl = total_sell - total_buy
        pnl_percent = (pnl / total_buy) * 100 if total_buy > 0 else None
        status = 'expired' if expired_legs else 'closed'
    elif pending_legs:
        status = 'pending_expiry'

    return {
        'total_buy': total_buy,
        'total_sell': total_sell,
        'pnl': pnl,
        'pnl_percent': pnl_percent,
        'realized_pnl': realized,
        'status': status,
        'symbols': symbols,
        'legs': len(trades),
        'expired_legs': expired_legs,
        'pending_expiry_legs': pending_legs,
        'has_expired_legs': bool(expired_legs),
        'has_pending_expiry': bool(pending_legs),
        'review_status': max((t.review or 0) for t in trades),
    }
