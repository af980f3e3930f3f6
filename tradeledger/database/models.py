"""
SQLAlchemy 2.0 declarative models for all Trade Ledger tables.

Dates and timestamps are stored as ISO strings (``YYYY-MM-DD`` for
expirations, ``YYYY-MM-DDTHH:MM:SS`` for executions) so that lexical order
matches chronological order on both SQLite and PostgreSQL.
"""

from datetime import datetime, date as date_type
from typing import Any, Dict, Union

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from tradeledger.models.ownership import Auto, Named


# ---------------------------------------------------------------------------
# Base class with to_dict() for JSON serialization
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base with a generic to_dict() helper."""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize all columns to a plain dict."""
        result = {}
        for col in self.__table__.columns:
            value = getattr(self, col.key)
            if isinstance(value, (datetime, date_type)):
                value = value.isoformat()
            result[col.key] = value
        return result


# ---------------------------------------------------------------------------
# Accounts & imports
# ---------------------------------------------------------------------------

class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    broker = Column(String, nullable=False)
    nickname = Column(String)
    created_at = Column(String, server_default=func.now())

    # relationships
    trades = relationship("Trade", back_populates="account",
                          cascade="all, delete-orphan", passive_deletes=True)
    imports = relationship("ImportRecord", back_populates="account",
                           cascade="all, delete-orphan", passive_deletes=True)


class ImportRecord(Base):
    __tablename__ = "imports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    filename = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    trades_imported = Column(Integer, default=0)
    trades_skipped = Column(Integer, default=0)
    imported_at = Column(String, server_default=func.now())

    # relationships
    account = relationship("Account", back_populates="imports")

    __table_args__ = (
        Index("idx_imports_account", "account_id"),
    )


# ---------------------------------------------------------------------------
# Trades (append-only execution ledger)
# ---------------------------------------------------------------------------

class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    broker_trade_id = Column(String)
    symbol = Column(String, nullable=False)
    asset_type = Column(String, nullable=False)   # stock, option, future
    side = Column(String, nullable=False)         # buy, sell
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    total = Column(Float, nullable=False)
    fees = Column(Float, default=0.0)
    executed_at = Column(String, nullable=False)
    expiration_date = Column(String)
    review = Column(Integer, default=0)
    expired_worthless = Column(Boolean, default=False)
    import_id = Column(Integer, ForeignKey("imports.id", ondelete="SET NULL"))
    created_at = Column(String, server_default=func.now())

    # relationships
    account = relationship("Account", back_populates="trades")
    position_link = relationship("PositionTrade", back_populates="trade", uselist=False,
                                 cascade="all, delete", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("account_id", "broker_trade_id", name="uq_trades_account_broker_trade"),
        Index("idx_trades_account", "account_id"),
        Index("idx_trades_symbol", "symbol"),
        Index("idx_trades_executed_at", "executed_at"),
        Index("idx_trades_asset_type", "asset_type"),
    )


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------

class Position(Base):
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String)      # NULL => reconciler-owned simple position
    notes = Column(Text)
    why = Column(String)
    status = Column(String, default="open")
    created_at = Column(String, server_default=func.now())

    # relationships
    position_trades = relationship("PositionTrade", back_populates="position",
                                   cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("idx_positions_name", "name"),
    )

    @property
    def owner(self) -> Union[Named, Auto]:
        if self.name is None:
            return Auto()
        return Named(name=self.name, notes=self.notes, why=self.why)

    @property
    def trade_ids(self):
        return [pt.trade_id for pt in self.position_trades]


class PositionTrade(Base):
    __tablename__ = "position_trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position_id = Column(Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False,
                      unique=True)

    # relationships
    position = relationship("Position", back_populates="position_trades")
    trade = relationship("Trade", back_populates="position_link")

    __table_args__ = (
        Index("idx_position_trades_position", "position_id"),
    )


# ---------------------------------------------------------------------------
# Why options (user tag vocabulary for Position.why)
# ---------------------------------------------------------------------------

class WhyOption(Base):
    __tablename__ = "why_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    label = Column(String, nullable=False, unique=True)
    note = Column(Text)
    created_at = Column(String, server_default=func.now())
