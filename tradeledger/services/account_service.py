"""Account service — broker accounts that own trades."""

from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func

from tradeledger.database.models import Account, ImportRecord, PositionTrade, Trade
from tradeledger.dependencies import db, reconciler


def get_all_accounts() -> List[Dict[str, Any]]:
    with db.get_session() as session:
        counts = dict(
            session.query(Trade.account_id, func.count(Trade.id)).group_by(Trade.account_id).all()
        )
        accounts = session.query(Account).order_by(Account.created_at.desc(), Account.id.desc()).all()
        result = []
        for account in accounts:
            data = account.to_dict()
            data['trade_count'] = counts.get(account.id, 0)
            result.append(data)
        return result


def get_account(account_id: int) -> Optional[Dict[str, Any]]:
    return db.get_account(account_id)


def create_account(broker: str, nickname: str = None) -> Dict[str, Any]:
    if not broker or not broker.strip():
        raise ValueError("Broker is required")
    with db.get_session() as session:
        account = Account(broker=broker.strip(), nickname=nickname)
        session.add(account)
        session.flush()
        result = account.to_dict()
    logger.info(f"Created account {result['id']} ({result['broker']})")
    return result


def delete_account(account_id: int) -> Optional[Dict[str, int]]:
    """Delete an account with its imports and trades.

    Positions that lose trades are refreshed; emptied ones are deleted.
    """
    with db.get_session() as session:
        if session.get(Account, account_id) is None:
            return None

        trade_ids = [r[0] for r in session.query(Trade.id).filter(Trade.account_id == account_id).all()]
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

        trades_deleted = session.query(Trade).filter(Trade.account_id == account_id).delete(synchronize_session=False)
        session.query(ImportRecord).filter(ImportRecord.account_id == account_id).delete(synchronize_session=False)
        session.query(Account).filter(Account.id == account_id).delete(synchronize_session=False)

        for position_id in affected:
            reconciler.refresh_position_status(position_id, session=session)

    logger.info(f"Deleted account {account_id} with {trades_deleted} trades")
    return {'trades_deleted': trades_deleted, 'positions_affected': len(affected)}
