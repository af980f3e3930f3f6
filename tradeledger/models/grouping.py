"""
Grouping keys — the identity that decides which trades may offset each other.

Options:      underlying|expiration|strike|type|account_id
Non-options:  symbol|asset_type|account_id

The option key is coarser than the raw symbol (SPXW/SPX with the same
expiration, strike and type share a key).  The account is always part of the
key so shares or contracts held at two brokers never merge.
"""

from collections import defaultdict
from typing import Dict, Iterable, List

from tradeledger.models.trade import TradeRecord, trade_sort_key
from tradeledger.utils.option_symbol import decode


def grouping_key(trade: TradeRecord) -> str:
    if trade.asset_type == 'option':
        parsed = decode(trade.symbol)
        if parsed:
            return "|".join((
                parsed.underlying,
                parsed.expiration.isoformat(),
                f"{parsed.strike:g}",
                parsed.type_short,
                str(trade.account_id),
            ))
    # Non-options and unparseable option symbols
    return f"{trade.symbol}|{trade.asset_type}|{trade.account_id}"


def group_by_key(trades: Iterable[TradeRecord]) -> Dict[str, List[TradeRecord]]:
    """Bucket trades by grouping key, each bucket in execution order.

    Buckets are returned in order of first appearance.
    """
    buckets: Dict[str, List[TradeRecord]] = defaultdict(list)
    for trade in sorted(trades, key=trade_sort_key):
        buckets[grouping_key(trade)].append(trade)
    return dict(buckets)
