"""Stats service — ledger-wide volume, daily activity and per-symbol activity."""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func

from tradeledger.database.models import Account, Trade
from tradeledger.dependencies import db


def _breakdown(rows, label: str):
    return [{label: key, 'count': count, 'volume': volume or 0.0} for key, count, volume in rows]


def get_overall_stats() -> Dict[str, Any]:
    with db.get_session() as session:
        total_trades = session.query(func.count(Trade.id)).scalar() or 0
        total_volume = session.query(func.sum(Trade.total)).scalar() or 0.0
        total_fees = session.query(func.sum(Trade.fees)).scalar() or 0.0

        by_asset_type = session.query(
            Trade.asset_type, func.count(Trade.id), func.sum(Trade.total),
        ).group_by(Trade.asset_type).all()

        by_side = session.query(
            Trade.side, func.count(Trade.id), func.sum(Trade.total),
        ).group_by(Trade.side).all()

        by_broker = session.query(
            Account.broker, func.count(Trade.id), func.sum(Trade.total),
        ).join(Account, Account.id == Trade.account_id).group_by(Account.broker).all()

        top_symbols = session.query(
            Trade.symbol, func.count(Trade.id), func.sum(Trade.total),
        ).group_by(Trade.symbol).order_by(func.count(Trade.id).desc(), Trade.symbol).limit(10).all()

    return {
        'total_trades': total_trades,
        'total_volume': total_volume,
        'total_fees': total_fees,
        'by_asset_type': _breakdown(by_asset_type, 'asset_type'),
        'by_side': _breakdown(by_side, 'side'),
        'by_broker': _breakdown(by_broker, 'broker'),
        'top_symbols': _breakdown(top_symbols, 'symbol'),
    }


def get_symbol_stats(symbol: str) -> Optional[Dict[str, Any]]:
    is_buy = Trade.side == 'buy'
    with db.get_session() as session:
        row = session.query(
            func.count(Trade.id),
            func.sum(case((is_buy, Trade.quantity), else_=0)),
            func.sum(case((is_buy, 0), else_=Trade.quantity)),
            func.sum(case((is_buy, Trade.total), else_=0)),
            func.sum(case((is_buy, 0), else_=Trade.total)),
            func.avg(Trade.price),
            func.min(Trade.executed_at),
            func.max(Trade.executed_at),
        ).filter(Trade.symbol == symbol).one()

    if not row[0]:
        return None

    return {
        'symbol': symbol,
        'trade_count': row[0],
        'total_bought': row[1] or 0.0,
        'total_sold': row[2] or 0.0,
        'buy_volume': row[3] or 0.0,
        'sell_volume': row[4] or 0.0,
        'avg_price': row[5],
        'first_trade': row[6],
        'last_trade': row[7],
    }


def get_daily_stats(days: int = 30, today: date = None) -> List[Dict[str, Any]]:
    """Per-day trade count and volume for the last ``days`` days, newest first."""
    since = ((today or date.today()) - timedelta(days=days)).isoformat()
    day = func.substr(Trade.executed_at, 1, 10)
    is_buy = Trade.side == 'buy'
    with db.get_session() as session:
        rows = session.query(
            day,
            func.count(Trade.id),
            func.sum(case((is_buy, Trade.total), else_=0)),
            func.sum(case((is_buy, 0), else_=Trade.total)),
            func.sum(Trade.total),
        ).filter(Trade.executed_at >= since).group_by(day).order_by(day.desc()).all()

    return [
        {
            'date': row[0],
            'trade_count': row[1],
            'buy_volume': row[2] or 0.0,
            'sell_volume': row[3] or 0.0,
            'total_volume': row[4] or 0.0,
        }
        for row in rows
    ]
