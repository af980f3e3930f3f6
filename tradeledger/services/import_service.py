"""Import service — import history and removal of an import's trades."""

from typing import Any, Dict, List, Optional

from loguru import logger

from tradeledger.database.models import Account, ImportRecord, PositionTrade, Trade
from tradeledger.dependencies import db, reconciler


def get_import_history(limit: int = 20) -> List[Dict[str, Any]]:
    with db.get_session() as session:
        rows = session.query(ImportRecord, Account.broker, Account.nickname).join(
            Account, Account.id == ImportRecord.account_id,
        ).order_by(ImportRecord.imported_at.desc(), ImportRecord.id.desc()).limit(limit).all()

        history = []
        for record, broker, nickname in rows:
            data = record.to_dict()
            data['broker'] = broker
            data['nickname'] = nickname
            history.append(data)
        return history


def delete_import(import_id: int) -> Optional[Dict[str, int]]:
    """Delete an import record and every trade it created, in one transaction."""
    with db.get_session() as session:
        if session.get(ImportRecord, import_id) is None:
            return None

        trade_ids = [r[0] for r in session.query(Trade.id).filter(Trade.import_id == import_id).all()]
        affected = set()
        if trade_ids:
            affected = {
                r[0] for r in session.query(PositionTrade.position_id).filter(
                    PositionTrade.trade_id.in_(trade_ids),
                ).distinct().all()
            }
            session.query(PositionTrade).filter(
                PositionTrade.trade_id.in_(trade_ids),
            ).delete(synchronize_session=False)

        trades_deleted = session.query(Trade).filter(Trade.import_id == import_id).delete(synchronize_session=False)
        session.query(ImportRecord).filter(ImportRecord.id == import_id).delete(synchronize_session=False)

        for position_id in affected:
            reconciler.refresh_position_status(position_id, session=session)

    logger.info(f"Deleted import {import_id} and {trades_deleted} trades")
    return {'trades_deleted': trades_deleted}
