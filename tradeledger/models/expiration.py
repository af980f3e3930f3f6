"""
Expiration Resolver — classifies option legs as open / pending expiry / expired.

P&L is never finalized automatically.  A lot whose calendar expiration has
arrived stays PENDING_EXPIRY until the user sets ``expired_worthless``; broker
settlement (expired, assigned, exercised) is not inferred.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from tradeledger.utils.option_symbol import decode


class ExpirationState(str, Enum):
    OPEN = "open"
    PENDING_EXPIRY = "pending_expiry"
    EXPIRED = "expired"


def resolve_expiration(
    asset_type: str,
    expiration_date: Optional[date],
    expired_worthless: bool,
    today: Optional[date] = None,
) -> ExpirationState:
    """Pure classification of an unbalanced leg.

    The manual flag wins regardless of dates.  Otherwise an option is
    pending from its expiration day onward.  Time of day is ignored.
    """
    if expired_worthless:
        return ExpirationState.EXPIRED
    if asset_type != 'option' or expiration_date is None:
        return ExpirationState.OPEN

    today = today or date.today()
    if isinstance(expiration_date, datetime):
        expiration_date = expiration_date.date()

    if expiration_date <= today:
        return ExpirationState.PENDING_EXPIRY
    return ExpirationState.OPEN


def expiration_for(symbol: str, asset_type: str, stored: Optional[date]) -> Optional[date]:
    """Stored expiration if present, else the date decoded from the symbol."""
    if asset_type != 'option':
        return None
    if stored is not None:
        return stored
    parsed = decode(symbol)
    return parsed.expiration if parsed else None
