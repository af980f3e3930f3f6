"""Backup service — full JSON export and atomic restore.

Export format (version 2)::

    {"version": 2, "exported_at": "...", "data": {
        "accounts": [...], "imports": [...], "trades": [...],
        "positions": [...], "position_trades": [...], "why_options": [...]}}

Version 1 backups carry ``strategies`` / ``strategyTrades`` instead of
positions; strategies are restored as named positions and the remaining
trades are re-segmented into simple positions afterwards.
"""

from datetime import datetime
from typing import Any, Dict, List

from loguru import logger
from sqlalchemy import text

from tradeledger.database.models import (
    Account, ImportRecord, Position, PositionTrade, Trade, WhyOption,
)
from tradeledger.dependencies import db, reconciler

BACKUP_VERSION = 2


def export_all_data() -> Dict[str, Any]:
    with db.get_session() as session:
        data = {
            'accounts': [r.to_dict() for r in session.query(Account).order_by(Account.id).all()],
            'imports': [r.to_dict() for r in session.query(ImportRecord).order_by(ImportRecord.id).all()],
            'trades': [r.to_dict() for r in session.query(Trade).order_by(Trade.id).all()],
            'positions': [r.to_dict() for r in session.query(Position).order_by(Position.id).all()],
            'position_trades': [r.to_dict() for r in session.query(PositionTrade).order_by(PositionTrade.id).all()],
            'why_options': [r.to_dict() for r in session.query(WhyOption).order_by(WhyOption.id).all()],
        }

    logger.info(f"Exported {len(data['trades'])} trades, {len(data['positions'])} positions")
    return {
        'version': BACKUP_VERSION,
        'exported_at': datetime.now().isoformat(timespec='seconds'),
        'data': data,
    }


def _columns(model, row: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only keys that are columns of ``model``."""
    names = set(model.__table__.columns.keys())
    return {k: v for k, v in row.items() if k in names}


def _trade_row(row: Dict[str, Any], import_ids: set) -> Dict[str, Any]:
    values = _columns(Trade, row)
    values['review'] = values.get('review') or 0
    values['expired_worthless'] = bool(values.get('expired_worthless'))
    values['fees'] = values.get('fees') or 0.0
    if values.get('import_id') not in import_ids:
        values['import_id'] = None
    return values


def restore_backup(backup: Any) -> Dict[str, int]:
    """Replace every table with the backup's contents in one transaction.

    Raises ValueError("Invalid backup format") when the payload has no
    version or data section.
    """
    if not isinstance(backup, dict) or not backup.get('version') or not isinstance(backup.get('data'), dict):
        raise ValueError("Invalid backup format")

    version = backup['version']
    data = backup['data']

    accounts: List[Dict] = data.get('accounts') or []
    imports: List[Dict] = data.get('imports') or []
    trades: List[Dict] = data.get('trades') or []

    if version == 1:
        positions = []
        for s in data.get('strategies') or []:
            position = {'id': s['id'], 'name': s.get('name') or f"Strategy {s['id']}", 'notes': s.get('notes')}
            if s.get('created_at'):
                position['created_at'] = s['created_at']
            positions.append(position)
        links = [
            {'position_id': st['strategy_id'], 'trade_id': st['trade_id']}
            for st in data.get('strategyTrades') or []
        ]
    else:
        positions = data.get('positions') or []
        links = data.get('position_trades') or []
    why_options = data.get('why_options')

    with db.get_session() as session:
        # Clear in reverse dependency order
        session.query(PositionTrade).delete(synchronize_session=False)
        session.query(Position).delete(synchronize_session=False)
        session.query(Trade).delete(synchronize_session=False)
        session.query(ImportRecord).delete(synchronize_session=False)
        session.query(Account).delete(synchronize_session=False)
        if why_options is not None:
            session.query(WhyOption).delete(synchronize_session=False)

        session.add_all(Account(**_columns(Account, r)) for r in accounts)
        session.flush()
        session.add_all(ImportRecord(**_columns(ImportRecord, r)) for r in imports)
        session.flush()
        import_ids = {r['id'] for r in imports if 'id' in r}
        session.add_all(Trade(**_trade_row(r, import_ids)) for r in trades)
        session.flush()
        session.add_all(Position(**_columns(Position, r)) for r in positions)
        session.flush()

        # A trade belongs to at most one position; later duplicates lose
        seen = set()
        unique_links = []
        for link in links:
            if link['trade_id'] in seen:
                continue
            seen.add(link['trade_id'])
            unique_links.append(PositionTrade(position_id=link['position_id'], trade_id=link['trade_id']))
        session.add_all(unique_links)
        session.flush()

        if why_options:
            session.add_all(WhyOption(**_columns(WhyOption, r)) for r in why_options)
            session.flush()

        if db.dialect == 'postgresql':
            _reset_sequences(session)

    restored = {
        'accounts': len(accounts),
        'imports': len(imports),
        'trades': len(trades),
        'positions': len(positions),
        'position_trades': len(unique_links),
    }

    if version == 1:
        rebuilt = reconciler.recompute_all_positions()
        reconciler.refresh_statuses_for_trades(sorted(seen))
        restored['simple_positions'] = rebuilt['created']

    logger.info(f"Restored version {version} backup: {restored}")
    return restored


def _reset_sequences(session):
    """Explicit ids bypass PostgreSQL serial sequences; move them past the max id."""
    for table in ('accounts', 'imports', 'trades', 'positions', 'position_trades', 'why_options'):
        session.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
        ))
