"""
OCC-style option symbol codec.

Format: [UNDERLYING][YYMMDD][C|P][STRIKE] where STRIKE is eight digits of
dollars * 10000, e.g. ``SPXW260107P06920000`` -> SPX, 2026-01-07, Put, $692.00.

Standard OCC symbols scale the strike by 1000 instead, so they decode at a
tenth of their listed strike: ``AAPL250117C00150000`` (a $150 call) comes
back as 15.0.  Symbols from brokers that use the OCC scale need their
strikes multiplied by 10 by the caller.

decode() strips a trailing ``W`` (weekly) from the underlying for display.
encode() never re-appends it, so encode(decode(s)) == s only holds for
underlyings without a weekly suffix.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

_OCC_PATTERN = re.compile(r'^([A-Z]+)(\d{2})(\d{2})(\d{2})([CP])(\d+)$')

_TYPE_NAMES = {'C': 'Call', 'P': 'Put'}

_STRIKE_SCALE = 10000


@dataclass(frozen=True)
class OptionSymbol:
    underlying: str
    expiration: date
    strike: float
    option_type: str           # Call or Put

    @property
    def type_short(self) -> str:
        return self.option_type[0]

    @property
    def formatted(self) -> str:
        """Human label, e.g. ``SPX 1/7/26 $692 P``"""
        exp = self.expiration
        return (f"{self.underlying} {exp.month}/{exp.day}/{exp.year % 100} "
                f"${self.strike:g} {self.type_short}")


def decode(symbol) -> Optional[OptionSymbol]:
    """Parse an OCC symbol, or return None if it is not OCC-encoded."""
    if not symbol or not isinstance(symbol, str):
        return None

    match = _OCC_PATTERN.match(symbol)
    if not match:
        return None

    underlying, yy, mm, dd, type_code, strike_str = match.groups()

    # Year offset is fixed: no century disambiguation
    try:
        expiration = date(2000 + int(yy), int(mm), int(dd))
    except ValueError:
        return None

    if underlying.endswith('W'):
        underlying = underlying[:-1]

    return OptionSymbol(
        underlying=underlying,
        expiration=expiration,
        strike=int(strike_str) / _STRIKE_SCALE,
        option_type=_TYPE_NAMES[type_code],
    )


def encode(underlying: str, expiration: date, option_type: str, strike: float) -> str:
    """Build an OCC symbol.

    ``option_type`` accepts 'Call'/'Put' or 'C'/'P' (case-insensitive).
    """
    type_code = option_type.strip()[0].upper()
    if type_code not in _TYPE_NAMES:
        raise ValueError(f"Unknown option type: {option_type!r}")
    strike_code = int(round(strike * _STRIKE_SCALE))
    return f"{underlying}{expiration:%y%m%d}{type_code}{strike_code:08d}"


def display_symbol(symbol: str, asset_type: str) -> str:
    """Underlying for decodable options, the raw symbol otherwise."""
    if asset_type == 'option':
        parsed = decode(symbol)
        if parsed:
            return parsed.underlying
    return symbol
