"""
Database Manager for Trade Ledger
Owns the SQLAlchemy engine and hands out transactional sessions
"""

from contextlib import contextmanager
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple
import logging
import time

import pytz
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from tradeledger.database.engine import build_engine
from tradeledger.database.models import Account, Base, Trade
from tradeledger.models.trade import parse_datetime

logger = logging.getLogger(__name__)

TRADE_FIELDS = (
    "broker_trade_id", "symbol", "asset_type", "side", "quantity", "price",
    "total", "fees", "executed_at", "expiration_date",
)


class DatabaseManager:
    def __init__(self, db_url: str = None):
        bundle = build_engine(db_url)
        self.engine = bundle.engine
        self.dialect = bundle.dialect
        self._insert_func = bundle.insert_func
        self._session_factory = sessionmaker(bind=self.engine)
        # Note: initialize_database() is called explicitly by FastAPI startup

    def initialize_database(self):
        """Create all tables that don't exist yet"""
        start_time = time.time()
        logger.info("Starting database initialization...")
        Base.metadata.create_all(self.engine)
        logger.info(f"Database initialization complete in {time.time() - start_time:.2f}s")

    def close(self):
        """Dispose of the engine's connection pool"""
        self.engine.dispose()

    @contextmanager
    def get_session(self):
        """Context manager yielding a SQLAlchemy Session.

        Commits on clean exit, rolls back on exception.
        """
        session: Session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dialect_insert(self, model):
        """Return a dialect-specific insert() statement for the given model.

        Equivalent to sqlite.insert(Model) or postgresql.insert(Model), so
        callers can chain ``.on_conflict_do_nothing()``.
        """
        return self._insert_func(model)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_or_create_account(self, broker: str, nickname: str = None, session: Session = None) -> Dict[str, Any]:
        """Look up an account by broker + nickname, creating it if missing"""
        if session is None:
            with self.get_session() as session:
                return self.get_or_create_account(broker, nickname, session)

        stmt = select(Account).where(Account.broker == broker)
        if nickname is None:
            stmt = stmt.where(Account.nickname.is_(None))
        else:
            stmt = stmt.where(Account.nickname == nickname)

        account = session.execute(stmt).scalars().first()
        if account is None:
            account = Account(broker=broker, nickname=nickname)
            session.add(account)
            session.flush()
            logger.info(f"Created account {account.id} ({broker} / {nickname})")
        return account.to_dict()

    def get_accounts(self) -> List[Dict[str, Any]]:
        with self.get_session() as session:
            rows = session.execute(select(Account).order_by(Account.broker, Account.nickname)).scalars().all()
            return [a.to_dict() for a in rows]

    def get_account(self, account_id: int) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            account = session.get(Account, account_id)
            return account.to_dict() if account else None

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def save_trades(
        self,
        account_id: int,
        trades: List[Dict[str, Any]],
        import_id: int = None,
        session: Session = None,
    ) -> Tuple[List[int], int]:
        """Insert normalized trades, skipping (account, broker_trade_id) duplicates.

        Returns:
            (ids of newly inserted trades, number skipped as duplicates)
        """
        if session is None:
            with self.get_session() as session:
                return self.save_trades(account_id, trades, import_id, session)

        inserted_ids = []
        skipped = 0
        for trade in trades:
            values = {k: _storage_value(trade.get(k)) for k in TRADE_FIELDS if k in trade}
            if values.get("executed_at") is not None:
                values["executed_at"] = _storage_value(parse_datetime(values["executed_at"]))
            values["account_id"] = account_id
            values["import_id"] = import_id
            if values.get("fees") is None:
                values["fees"] = 0.0

            stmt = (
                self.dialect_insert(Trade)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["account_id", "broker_trade_id"])
                .returning(Trade.id)
            )
            new_id = session.execute(stmt).scalar()
            if new_id is None:
                skipped += 1
            else:
                inserted_ids.append(new_id)

        logger.info(f"Saved {len(inserted_ids)} trades for account {account_id} ({skipped} duplicates skipped)")
        return inserted_ids, skipped


def _storage_value(value):
    """Dates and datetimes are stored as ISO strings, datetimes as naive UTC"""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(pytz.UTC)
        return value.replace(tzinfo=None).isoformat(timespec="seconds")
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
