"""Trade service — ledger queries, review/expire flags, split adjustment, trade import."""

import math
from typing import Any, Dict, List, Optional

from loguru import logger

from tradeledger.database.models import Account, ImportRecord, Position, PositionTrade, Trade
from tradeledger.dependencies import db, reconciler
from tradeledger.utils.option_symbol import display_symbol

REVIEW_STATES = (0, 1, 2)


def serialize_trade(trade: Trade, broker: Optional[str] = None) -> Dict[str, Any]:
    data = trade.to_dict()
    data['display_symbol'] = display_symbol(trade.symbol, trade.asset_type)
    data['expired_worthless'] = bool(trade.expired_worthless)
    if broker is not None:
        data['broker'] = broker
    return data


def get_trades(
    symbol: str = None,
    asset_type: str = None,
    side: str = None,
    account_id: int = None,
    broker: str = None,
    from_date: str = None,
    to_date: str = None,
    limit: int = None,
) -> List[Dict[str, Any]]:
    """Trades newest first, optionally filtered"""
    with db.get_session() as session:
        q = session.query(Trade, Account.broker, Account.nickname, ImportRecord.filename).join(
            Account, Account.id == Trade.account_id,
        ).outerjoin(
            ImportRecord, ImportRecord.id == Trade.import_id,
        )

        if symbol:
            q = q.filter(Trade.symbol == symbol)
        if asset_type:
            q = q.filter(Trade.asset_type == asset_type)
        if side:
            q = q.filter(Trade.side == side)
        if account_id:
            q = q.filter(Trade.account_id == account_id)
        if broker:
            q = q.filter(Account.broker == broker)
        if from_date:
            q = q.filter(Trade.executed_at >= from_date)
        if to_date:
            q = q.filter(Trade.executed_at <= to_date)

        q = q.order_by(Trade.executed_at.desc(), Trade.id.desc())
        if limit:
            q = q.limit(limit)

        results = []
        for trade, broker_name, nickname, filename in q.all():
            data = serialize_trade(trade, broker_name)
            data['account_name'] = nickname
            data['import_filename'] = filename
            results.append(data)
        return results


def get_trade(trade_id: int) -> Optional[Dict[str, Any]]:
    with db.get_session() as session:
        row = session.query(Trade, Account.broker, Account.nickname).join(
            Account, Account.id == Trade.account_id,
        ).filter(Trade.id == trade_id).first()
        if row is None:
            return None
        trade, broker, nickname = row
        data = serialize_trade(trade, broker)
        data['account_name'] = nickname
        return data


def delete_trade(trade_id: int) -> bool:
    """Delete one trade; its position link cascades and an emptied position is removed."""
    with db.get_session() as session:
        position_id = session.query(PositionTrade.position_id).filter(
            PositionTrade.trade_id == trade_id,
        ).scalar()
        deleted = session.query(Trade).filter(Trade.id == trade_id).delete(synchronize_session=False)
        if deleted and position_id is not None:
            session.query(PositionTrade).filter(PositionTrade.trade_id == trade_id).delete(synchronize_session=False)
            reconciler.refresh_position_status(position_id, session=session)

    if deleted:
        logger.info(f"Deleted trade {trade_id}")
    return deleted > 0


def delete_all_trades() -> int:
    """Wipe the ledger along with every position."""
    with db.get_session() as session:
        session.query(PositionTrade).delete(synchronize_session=False)
        session.query(Position).delete(synchronize_session=False)
        deleted = session.query(Trade).delete(synchronize_session=False)

    logger.warning(f"Deleted all {deleted} trades and every position")
    return deleted


def toggle_trade_review(trade_id: int) -> Optional[int]:
    """Flip a trade between unreviewed (0) and reviewing (1).

    Returns the new review value, or None if the trade does not exist.
    """
    with db.get_session() as session:
        trade = session.get(Trade, trade_id)
        if trade is None:
            return None
        trade.review = 0 if trade.review else 1
        return trade.review


def set_trades_review(trade_ids: List[int], status: int) -> int:
    if status not in REVIEW_STATES:
        raise ValueError("status must be 0, 1, or 2")
    if not trade_ids:
        return 0
    with db.get_session() as session:
        return session.query(Trade).filter(Trade.id.in_(trade_ids)).update(
            {Trade.review: status}, synchronize_session=False,
        )


def expire_trades(trade_ids: List[int]) -> int:
    """Mark trades expired worthless and re-derive the affected positions."""
    if not trade_ids:
        return 0
    with reconciler.transaction("expire_trades") as session:
        updated = session.query(Trade).filter(Trade.id.in_(trade_ids)).update(
            {Trade.expired_worthless: True}, synchronize_session=False,
        )
        if updated:
            reconciler.recompute_after_import(trade_ids, session=session)
            reconciler.refresh_statuses_for_trades(trade_ids, session=session)

    logger.info(f"Marked {updated} trades expired worthless")
    return updated


def apply_stock_split(trade_ids: List[int], ratio: float) -> int:
    """Scale quantity by ``ratio`` and price by 1/ratio; totals are preserved."""
    if ratio is None or ratio <= 0:
        raise ValueError("ratio must be a positive number")
    if not trade_ids:
        return 0

    with reconciler.transaction("apply_stock_split") as session:
        trades = session.query(Trade).filter(Trade.id.in_(trade_ids)).all()
        for trade in trades:
            trade.quantity = trade.quantity * ratio
            trade.price = trade.price / ratio
        updated = len(trades)
        if updated:
            session.flush()
            reconciler.recompute_after_import(trade_ids, session=session)
            reconciler.refresh_statuses_for_trades(trade_ids, session=session)

    logger.info(f"Applied {ratio}:1 split to {updated} trades")
    return updated


def get_unique_symbols() -> List[str]:
    with db.get_session() as session:
        return [r[0] for r in session.query(Trade.symbol).distinct().order_by(Trade.symbol).all()]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _validate_amounts(trade: Dict[str, Any]):
    symbol = trade.get('symbol')
    quantity = trade.get('quantity')
    if not _is_number(quantity) or quantity <= 0:
        raise ValueError(f"Trade quantity must be positive: {symbol} {quantity!r}")
    price = trade.get('price')
    if not _is_number(price) or price < 0:
        raise ValueError(f"Trade price must be zero or more: {symbol} {price!r}")
    total = trade.get('total')
    if not _is_number(total):
        raise ValueError(f"Trade total must be a finite number: {symbol} {total!r}")


def import_trades(broker: str, trades: List[Dict[str, Any]], nickname: str = None,
                  filename: str = 'api', file_type: str = 'json') -> Dict[str, Any]:
    """Insert a normalized batch, log the import and reconcile touched positions."""
    if not trades:
        return {
            'broker': broker,
            'trades_imported': 0,
            'trades_skipped': 0,
            'message': 'No trades found in batch',
        }

    for trade in trades:
        _validate_amounts(trade)

    # Inserts, the import record and the reconcile commit or roll back together
    with reconciler.transaction("import_trades") as session:
        account = db.get_or_create_account(broker, nickname, session=session)
        record = ImportRecord(account_id=account['id'], filename=filename, file_type=file_type)
        session.add(record)
        session.flush()

        inserted_ids, skipped = db.save_trades(account['id'], trades, import_id=record.id, session=session)
        record.trades_imported = len(inserted_ids)
        record.trades_skipped = skipped
        import_id = record.id

        reconcile = reconciler.recompute_after_import(inserted_ids, session=session)

    logger.info(f"Imported {len(inserted_ids)} trades ({skipped} skipped) for {broker}; "
                f"{reconcile['recomputed']} positions rebuilt")
    return {
        'broker': broker,
        'account_id': account['id'],
        'import_id': import_id,
        'trades_imported': len(inserted_ids),
        'trades_skipped': skipped,
        'total_in_batch': len(trades),
        'trade_ids': inserted_ids,
        'positions_recomputed': reconcile['recomputed'],
    }
