"""Position service — position listing with live metrics, basket operations, why-options."""

from datetime import date
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError

from tradeledger.database.models import Account, Position, PositionTrade, Trade, WhyOption
from tradeledger.dependencies import db, reconciler
from tradeledger.models.ownership import is_named
from tradeledger.models.pnl_calculator import calculate_position_metrics
from tradeledger.models.trade import TradeRecord
from tradeledger.services.trade_service import serialize_trade
from tradeledger.utils.option_symbol import display_symbol


def list_positions(today: Optional[date] = None) -> List[Dict[str, Any]]:
    """All positions, newest first, each with its trades and P&L metrics."""
    with db.get_session() as session:
        positions = session.query(Position).order_by(Position.created_at.desc(), Position.id.desc()).all()

        links: Dict[int, List[int]] = {}
        for position_id, trade_id in session.query(PositionTrade.position_id, PositionTrade.trade_id).all():
            links.setdefault(position_id, []).append(trade_id)

        rows = session.query(Trade, Account.broker).join(Account, Account.id == Trade.account_id).all()
        trades_by_id = {trade.id: (trade, broker) for trade, broker in rows}

        result = []
        for position in positions:
            members = [trades_by_id[tid] for tid in links.get(position.id, []) if tid in trades_by_id]
            members.sort(key=lambda pair: (pair[0].executed_at, pair[0].id))
            result.append(_position_payload(position, members, today))

    logger.debug(f"Listed {len(result)} positions")
    return result


def get_position(position_id: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    with db.get_session() as session:
        position = session.get(Position, position_id)
        if position is None:
            return None
        rows = session.query(Trade, Account.broker).join(
            Account, Account.id == Trade.account_id,
        ).join(
            PositionTrade, PositionTrade.trade_id == Trade.id,
        ).filter(
            PositionTrade.position_id == position_id,
        ).order_by(Trade.executed_at, Trade.id).all()
        return _position_payload(position, rows, today)


def _position_payload(position: Position, members, today: Optional[date]) -> Dict[str, Any]:
    records = [TradeRecord.from_orm(trade) for trade, _ in members]
    metrics = calculate_position_metrics(records, today)

    named = is_named(position.owner)
    payload: Dict[str, Any] = {
        'id': position.id,
        'name': position.name,
        'notes': position.notes,
        'why': position.why,
        'created_at': position.created_at,
        'owner': 'named' if named else 'auto',
        'stored_status': position.status,
        'is_multi_leg': named or len(metrics['symbols']) > 1,
        'trade_ids': [trade.id for trade, _ in members],
        'trades': [serialize_trade(trade, broker) for trade, broker in members],
    }

    # Round-trip display fields for single-contract positions
    if not payload['is_multi_leg'] and members:
        first = members[0][0]
        buys = [t for t, _ in members if t.side == 'buy']
        sells = [t for t, _ in members if t.side == 'sell']
        bought = sum(t.quantity for t in buys)
        net = bought - sum(t.quantity for t in sells)
        payload.update({
            'symbol': first.symbol,
            'display_symbol': display_symbol(first.symbol, first.asset_type),
            'asset_type': first.asset_type,
            'quantity': net if net != 0 else bought,
            'buy_date': buys[0].executed_at if buys else None,
            'sell_date': sells[-1].executed_at if sells else None,
            'expiration_date': first.expiration_date,
            'broker': members[0][1],
        })

    payload.update(metrics)
    return payload


def create_position(name: str, trade_ids: List[int], notes: Optional[str] = None,
                    why: Optional[str] = None) -> Dict[str, Any]:
    return reconciler.create_position(name, trade_ids, notes=notes, why=why)


def update_position(position_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply name/notes/why changes.

    Raises ValueError when nothing is supplied or a supplied name is blank.
    Returns None if the position does not exist.
    """
    updates = {k: v for k, v in fields.items() if k in ('name', 'notes', 'why')}
    if not updates:
        raise ValueError("No updates provided")
    if 'name' in updates and updates['name'] is not None:
        if not updates['name'].strip():
            raise ValueError("Position name cannot be blank")
        updates['name'] = updates['name'].strip()

    with db.get_session() as session:
        position = session.get(Position, position_id)
        if position is None:
            return None
        for key, value in updates.items():
            setattr(position, key, value)
        session.flush()
        result = position.to_dict()

    logger.info(f"Updated position {position_id}: {sorted(updates)}")
    return result


def delete_position(position_id: int) -> Optional[Dict[str, Any]]:
    """Delete a position; its trades stay unclaimed until the next recompute."""
    with db.get_session() as session:
        position = session.get(Position, position_id)
        if position is None:
            return None
        released = session.query(PositionTrade).filter(
            PositionTrade.position_id == position_id,
        ).delete(synchronize_session=False)
        session.delete(position)

    logger.info(f"Deleted position {position_id}, released {released} trades")
    return {'deleted': True, 'released': released}


def add_trades(position_id: int, trade_ids: List[int]) -> Optional[Dict[str, int]]:
    return reconciler.add_trades_to_position(position_id, trade_ids)


def remove_trades(position_id: int, trade_ids: List[int]) -> Optional[Dict[str, Any]]:
    return reconciler.remove_trades_from_position(position_id, trade_ids)


def merge_positions(position_ids: List[int], name: str, notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
    return reconciler.merge_positions(position_ids, name, notes=notes)


def ungroup_position(position_id: int) -> Optional[Dict[str, int]]:
    return reconciler.ungroup_position(position_id)


def recompute_all_positions() -> Dict[str, int]:
    return reconciler.recompute_all_positions()


def get_grouped_trade_ids() -> List[int]:
    """Ids of every trade currently held by some position."""
    with db.get_session() as session:
        return sorted(r[0] for r in session.query(PositionTrade.trade_id).all())


# ---------------------------------------------------------------------------
# Why options
# ---------------------------------------------------------------------------

def list_why_options() -> List[Dict[str, Any]]:
    with db.get_session() as session:
        return [o.to_dict() for o in session.query(WhyOption).order_by(WhyOption.label.asc()).all()]


def create_why_option(label: str, note: Optional[str] = None) -> Dict[str, Any]:
    """Add a tag to the why vocabulary.

    Raises ValueError for a blank label and KeyError if the label exists.
    """
    if not label or not label.strip():
        raise ValueError("Label is required")
    label = label.strip()

    with db.get_session() as session:
        if session.query(WhyOption.id).filter(WhyOption.label == label).first():
            raise KeyError(label)
        option = WhyOption(label=label, note=note)
        session.add(option)
        session.flush()
        result = option.to_dict()

    logger.info(f"Created why option '{label}'")
    return result


def update_why_option(option_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    updates = {k: v for k, v in fields.items() if k in ('label', 'note')}
    if not updates:
        raise ValueError("No updates provided")
    if 'label' in updates:
        if not updates['label'] or not updates['label'].strip():
            raise ValueError("Label is required")
        updates['label'] = updates['label'].strip()

    try:
        with db.get_session() as session:
            option = session.get(WhyOption, option_id)
            if option is None:
                return None
            for key, value in updates.items():
                setattr(option, key, value)
            session.flush()
            return option.to_dict()
    except IntegrityError:
        raise KeyError(updates.get('label'))


def delete_why_option(option_id: int) -> bool:
    with db.get_session() as session:
        deleted = session.query(WhyOption).filter(WhyOption.id == option_id).delete()
    return deleted > 0
