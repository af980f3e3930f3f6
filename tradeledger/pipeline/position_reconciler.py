"""
Position Reconciler — keeps persisted positions consistent with the trade ledger.

Public API:
    PositionReconciler(db_manager)
        .transaction(operation)
        .recompute_after_import(trade_ids, session=None)
        .refresh_statuses_for_trades(trade_ids, session=None)
        .refresh_position_status(position_id, session=None)
        .recompute_all_positions()
        .create_position(name, trade_ids, notes)
        .add_trades_to_position(position_id, trade_ids)
        .remove_trades_from_position(position_id, trade_ids)
        .merge_positions(position_ids, name)
        .ungroup_position(position_id)

Simple positions (no name) belong to the reconciler and are deleted and
rebuilt from round-trip segmentation whenever their grouping keys change.
Named positions belong to the user; the reconciler only touches them through
the explicit basket operations above.

Every public operation runs in one session.  Recomputes stage the new
segmentation in memory first, then delete and insert inside the same
transaction, so no trade is ever observably unowned.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from tradeledger.database.models import Position, PositionTrade, Trade
from tradeledger.models.grouping import grouping_key
from tradeledger.models.pnl_calculator import calculate_position_metrics
from tradeledger.models.round_trip import RoundTrip, compute_round_trips
from tradeledger.models.trade import TradeRecord

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from tradeledger.database.db_manager import DatabaseManager

logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """A reconcile transaction failed and was rolled back."""


def _simple_only():
    """Criterion selecting reconciler-owned positions."""
    return Position.name.is_(None)


class PositionReconciler:
    def __init__(self, db_manager: "DatabaseManager", today: Optional[date] = None):
        self.db = db_manager
        self.today = today  # reference date override, None means date.today()

    @contextmanager
    def transaction(self, operation: str):
        """Session whose database failures surface as ReconciliationError after rollback."""
        try:
            with self.db.get_session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(f"{operation} rolled back: {exc}")
            raise ReconciliationError(f"{operation} failed") from exc

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def recompute_after_import(self, trade_ids: Iterable[int], session: "Session" = None) -> Dict[str, int]:
        """Rebuild the simple positions of every grouping key the given trades touch.

        If session is provided, uses it (caller manages commit), so the
        caller's inserts and this recompute land in one transaction.
        """
        trade_ids = list(set(trade_ids or []))
        if not trade_ids:
            return {"recomputed": 0, "deleted": 0}

        if session is None:
            with self.transaction("recompute_after_import") as s:
                return self.recompute_after_import(trade_ids, session=s)

        imported = self._load_trades(session, trade_ids)
        if not imported:
            return {"recomputed": 0, "deleted": 0}

        # Phase 1: stage
        touched = {grouping_key(t) for t in imported}
        candidates = self._load_trades_for_keys(session, imported, touched)
        candidate_ids = {t.id for t in candidates}

        stale_ids = self._simple_positions_holding(session, candidate_ids)
        stale_trade_ids = self._trade_ids_of(session, stale_ids)
        named = self._named_trade_ids(session)

        pool = {t.id: t for t in candidates}
        extra = stale_trade_ids - candidate_ids
        if extra:
            for t in self._load_trades(session, extra):
                pool[t.id] = t
        pool_trades = [t for tid, t in pool.items() if tid not in named]

        trips = compute_round_trips(pool_trades, self.today)

        # Phase 2: swap
        self._delete_positions(session, stale_ids)
        created = self._persist_round_trips(session, trips)

        logger.info(f"Recomputed {len(touched)} keys after import: "
                    f"deleted {len(stale_ids)}, created {created} simple positions")
        return {"recomputed": created, "deleted": len(stale_ids)}

    def recompute_all_positions(self) -> Dict[str, int]:
        """Discard every simple position and re-segment all unclaimed trades."""
        with self.transaction("recompute_all_positions") as session:
            # Phase 1: stage
            named = self._named_trade_ids(session)
            trades = [t for t in self._load_trades(session) if t.id not in named]
            trips = compute_round_trips(trades, self.today)

            # Phase 2: swap
            stale_ids = {r[0] for r in session.query(Position.id).filter(_simple_only()).all()}
            self._delete_positions(session, stale_ids)
            created = self._persist_round_trips(session, trips)

        logger.info(f"Full recompute: deleted {len(stale_ids)}, created {created} simple positions "
                    f"({len(named)} trades held by named positions)")
        return {"created": created, "deleted": len(stale_ids)}

    # ------------------------------------------------------------------
    # User basket operations
    # ------------------------------------------------------------------

    def create_position(
        self,
        name: str,
        trade_ids: Iterable[int] = (),
        notes: Optional[str] = None,
        why: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a named position owning exactly ``trade_ids``.

        The trades are detached from wherever they live first; unknown ids
        are ignored.
        """
        if not name or not name.strip():
            raise ValueError("Position name is required")

        with self.transaction("create_position") as session:
            position = self._create_named(session, name.strip(), list(trade_ids or []), notes, why)
            result = self._summary(session, position)

        logger.info(f"Created position {result['id']} '{result['name']}' with {result['trade_count']} trades")
        return result

    def add_trades_to_position(self, position_id: int, trade_ids: Iterable[int]) -> Optional[Dict[str, int]]:
        with self.transaction("add_trades_to_position") as session:
            if session.get(Position, position_id) is None:
                return None

            valid_ids = self._existing_trade_ids(session, trade_ids)
            if not valid_ids:
                return {"added": 0}

            self._detach(session, valid_ids, keep=position_id)
            added = self._attach(session, position_id, valid_ids)
            self.refresh_position_status(position_id, session=session)

        logger.info(f"Added {added} trades to position {position_id}")
        return {"added": added}

    def remove_trades_from_position(self, position_id: int, trade_ids: Iterable[int]) -> Optional[Dict[str, Any]]:
        """Unlink trades from a position.

        Removed trades stay unclaimed until the next recompute.  A position
        left with no trades is deleted.
        """
        trade_ids = list(trade_ids or [])
        with self.transaction("remove_trades_from_position") as session:
            if session.get(Position, position_id) is None:
                return None

            removed = 0
            if trade_ids:
                removed = session.query(PositionTrade).filter(
                    PositionTrade.position_id == position_id,
                    PositionTrade.trade_id.in_(trade_ids),
                ).delete(synchronize_session=False)

            deleted = self.refresh_position_status(position_id, session=session)

        logger.info(f"Removed {removed} trades from position {position_id}"
                    f"{' (position deleted)' if deleted else ''}")
        return {"removed": removed, "position_deleted": deleted}

    def merge_positions(self, position_ids: Iterable[int], name: str, notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Fold several positions into one new named position."""
        position_ids = list(dict.fromkeys(position_ids or []))
        if len(position_ids) < 2:
            raise ValueError("At least 2 positions are required to merge")
        if not name or not name.strip():
            raise ValueError("Position name is required")

        with self.transaction("merge_positions") as session:
            found = {r[0] for r in session.query(Position.id).filter(Position.id.in_(position_ids)).all()}
            if len(found) != len(position_ids):
                return None

            trade_ids = sorted(self._trade_ids_of(session, found))
            position = self._create_named(session, name.strip(), trade_ids, notes, None)
            self._delete_positions(session, found)
            result = self._summary(session, position)
            result["merged"] = position_ids

        logger.info(f"Merged positions {position_ids} into {result['id']} '{result['name']}'")
        return result

    def ungroup_position(self, position_id: int) -> Optional[Dict[str, int]]:
        """Delete a position and re-segment its former trades as simple positions."""
        with self.transaction("ungroup_position") as session:
            if session.get(Position, position_id) is None:
                return None

            trade_ids = self._trade_ids_of(session, {position_id})
            trips = compute_round_trips(self._load_trades(session, trade_ids), self.today)

            self._delete_positions(session, {position_id})
            created = self._persist_round_trips(session, trips)

        logger.info(f"Ungrouped position {position_id} into {created} simple positions")
        return {"created": created}

    def refresh_statuses_for_trades(self, trade_ids: Iterable[int], session: "Session" = None) -> int:
        """Re-derive the stored status of every position holding any of ``trade_ids``."""
        trade_ids = list(trade_ids or [])
        if not trade_ids:
            return 0
        if session is None:
            with self.transaction("refresh_statuses_for_trades") as s:
                return self.refresh_statuses_for_trades(trade_ids, session=s)

        position_ids = {
            r[0] for r in session.query(PositionTrade.position_id).filter(
                PositionTrade.trade_id.in_(trade_ids),
            ).distinct().all()
        }
        for pid in position_ids:
            self.refresh_position_status(pid, session=session)
        return len(position_ids)

    def refresh_position_status(self, position_id: int, session: "Session" = None) -> bool:
        """Recalculate a position's status from its trades.

        Deletes the position if it has no trades left; returns True in that case.
        If session is provided, uses it (caller manages commit).
        """
        if session is None:
            with self.transaction("refresh_position_status") as s:
                return self.refresh_position_status(position_id, session=s)

        trade_ids = self._trade_ids_of(session, {position_id})
        if not trade_ids:
            self._delete_positions(session, {position_id})
            return True

        metrics = calculate_position_metrics(self._load_trades(session, trade_ids), self.today)
        session.query(Position).filter(Position.id == position_id).update(
            {Position.status: metrics["status"]}, synchronize_session=False,
        )
        return False

    # ------------------------------------------------------------------
    # Session helpers (caller manages the transaction)
    # ------------------------------------------------------------------

    def _create_named(self, session: "Session", name: str, trade_ids: List[int],
                      notes: Optional[str], why: Optional[str]) -> Position:
        valid_ids = self._existing_trade_ids(session, trade_ids)
        if valid_ids:
            self._detach(session, valid_ids)

        position = Position(name=name, notes=notes, why=why, status="open")
        session.add(position)
        session.flush()

        if valid_ids:
            self._attach(session, position.id, valid_ids)
            self.refresh_position_status(position.id, session=session)
            session.refresh(position)
        return position

    def _detach(self, session: "Session", trade_ids: List[int], keep: Optional[int] = None) -> Set[int]:
        """Unlink trades from all positions, then refresh (or delete) the losers."""
        affected = {
            r[0] for r in session.query(PositionTrade.position_id).filter(
                PositionTrade.trade_id.in_(trade_ids),
            ).distinct().all()
        }
        session.query(PositionTrade).filter(
            PositionTrade.trade_id.in_(trade_ids),
        ).delete(synchronize_session=False)

        for pid in affected:
            if pid != keep:
                self.refresh_position_status(pid, session=session)
        return affected

    def _attach(self, session: "Session", position_id: int, trade_ids: Iterable[int]) -> int:
        """Link trades to a position; double claims are absorbed as zero rows."""
        rows = [{"position_id": position_id, "trade_id": tid} for tid in trade_ids]
        if not rows:
            return 0
        stmt = self.db.dialect_insert(PositionTrade).values(rows).on_conflict_do_nothing(
            index_elements=["trade_id"],
        )
        return session.execute(stmt).rowcount

    def _persist_round_trips(self, session: "Session", trips: List[RoundTrip]) -> int:
        created = 0
        for trip in trips:
            position = Position(name=None, status=trip.status)
            session.add(position)
            session.flush()
            self._attach(session, position.id, trip.trade_ids)
            created += 1
        return created

    def _delete_positions(self, session: "Session", position_ids: Iterable[int]) -> int:
        position_ids = list(position_ids)
        if not position_ids:
            return 0
        session.query(PositionTrade).filter(
            PositionTrade.position_id.in_(position_ids),
        ).delete(synchronize_session=False)
        return session.query(Position).filter(
            Position.id.in_(position_ids),
        ).delete(synchronize_session=False)

    def _load_trades(self, session: "Session", trade_ids: Iterable[int] = None) -> List[TradeRecord]:
        q = session.query(Trade)
        if trade_ids is not None:
            trade_ids = list(trade_ids)
            if not trade_ids:
                return []
            q = q.filter(Trade.id.in_(trade_ids))
        return [TradeRecord.from_orm(row) for row in q.order_by(Trade.executed_at, Trade.id).all()]

    def _load_trades_for_keys(self, session: "Session", seeds: List[TradeRecord], keys: Set[str]) -> List[TradeRecord]:
        """All trades whose grouping key is in ``keys``.

        Keys are derived in Python (option keys normalize the symbol), so the
        query narrows by account and asset type and the key filter runs here.
        """
        account_ids = {t.account_id for t in seeds}
        asset_types = {t.asset_type for t in seeds}
        rows = session.query(Trade).filter(
            Trade.account_id.in_(list(account_ids)),
            Trade.asset_type.in_(list(asset_types)),
        ).all()
        records = (TradeRecord.from_orm(row) for row in rows)
        return [t for t in records if grouping_key(t) in keys]

    def _simple_positions_holding(self, session: "Session", trade_ids: Set[int]) -> Set[int]:
        if not trade_ids:
            return set()
        rows = session.query(PositionTrade.position_id).join(
            Position, Position.id == PositionTrade.position_id,
        ).filter(
            _simple_only(),
            PositionTrade.trade_id.in_(list(trade_ids)),
        ).distinct().all()
        return {r[0] for r in rows}

    def _trade_ids_of(self, session: "Session", position_ids: Iterable[int]) -> Set[int]:
        position_ids = list(position_ids)
        if not position_ids:
            return set()
        rows = session.query(PositionTrade.trade_id).filter(
            PositionTrade.position_id.in_(position_ids),
        ).all()
        return {r[0] for r in rows}

    def _named_trade_ids(self, session: "Session") -> Set[int]:
        rows = session.query(PositionTrade.trade_id).join(
            Position, Position.id == PositionTrade.position_id,
        ).filter(Position.name.isnot(None)).all()
        return {r[0] for r in rows}

    def _existing_trade_ids(self, session: "Session", trade_ids: Iterable[int]) -> List[int]:
        wanted = list(dict.fromkeys(trade_ids or []))
        if not wanted:
            return []
        found = {r[0] for r in session.query(Trade.id).filter(Trade.id.in_(wanted)).all()}
        return [tid for tid in wanted if tid in found]

    def _summary(self, session: "Session", position: Position) -> Dict[str, Any]:
        return {
            "id": position.id,
            "name": position.name,
            "notes": position.notes,
            "why": position.why,
            "status": position.status,
            "trade_count": len(self._trade_ids_of(session, {position.id})),
        }
