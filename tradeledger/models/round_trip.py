"""
Round-Trip Segmenter — cuts each grouping key's trade stream into balanced
flat-to-flat segments.

A segment ends the moment cumulative bought quantity equals cumulative sold
quantity.  The unbalanced tail (if any) becomes one more segment.  These
segments are what the reconciler persists as simple positions.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional
import logging

from tradeledger.models.expiration import ExpirationState, expiration_for, resolve_expiration
from tradeledger.models.grouping import group_by_key
from tradeledger.models.trade import TradeRecord

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 1e-9


@dataclass
class RoundTrip:
    grouping_key: str
    trade_ids: List[int] = field(default_factory=list)
    status: str = 'open'
    net_quantity: float = 0.0

    @property
    def is_balanced(self) -> bool:
        return abs(self.net_quantity) <= BALANCE_TOLERANCE


def _round_trip_status(members: List[TradeRecord], net_quantity: float, today: Optional[date]) -> str:
    if any(t.expired_worthless for t in members):
        return 'expired'

    if abs(net_quantity) > BALANCE_TOLERANCE:
        first = members[0]
        expiration = expiration_for(first.symbol, first.asset_type, first.expiration_date)
        state = resolve_expiration(first.asset_type, expiration, False, today)
        if state is ExpirationState.PENDING_EXPIRY:
            return 'pending_expiry'
        return 'open'

    return 'closed'


def _segment(key: str, trades: List[TradeRecord], today: Optional[date]) -> List[RoundTrip]:
    trips = []
    members: List[TradeRecord] = []
    bought = sold = 0.0

    for trade in trades:
        if not trade.has_usable_quantity:
            logger.debug(f"Skipping trade {trade.id}: unusable quantity {trade.quantity!r}")
            continue

        members.append(trade)
        if trade.is_buy:
            bought += float(trade.quantity)
        else:
            sold += float(trade.quantity)

        if bought > 0 and abs(bought - sold) <= BALANCE_TOLERANCE:
            trips.append(RoundTrip(
                grouping_key=key,
                trade_ids=[t.id for t in members],
                status=_round_trip_status(members, 0.0, today),
            ))
            members = []
            bought = sold = 0.0

    if members:
        net = bought - sold
        trips.append(RoundTrip(
            grouping_key=key,
            trade_ids=[t.id for t in members],
            status=_round_trip_status(members, net, today),
            net_quantity=net,
        ))

    return trips


def compute_round_trips(trades: Iterable[TradeRecord], today: Optional[date] = None) -> List[RoundTrip]:
    """Segment ``trades`` into round trips, key by key.

    Every usable trade lands in exactly one round trip.  Keys are visited in
    order of their first execution; trips within a key are chronological.
    """
    trips = []
    for key, bucket in group_by_key(trades).items():
        trips.extend(_segment(key, bucket, today))
    return trips
