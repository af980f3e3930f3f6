"""Initial ledger schema: accounts, imports, trades, positions, why options.

Revision ID: 0001_initial_ledger_schema
Revises:
Create Date: 2026-10-18

Fresh databases can also be created by DatabaseManager.initialize_database()
(metadata.create_all); run `alembic stamp head` on those before applying any
later revision.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_ledger_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("broker", sa.String, nullable=False),
        sa.Column("nickname", sa.String),
        sa.Column("created_at", sa.String, server_default=sa.func.now()),
    )

    op.create_table(
        "imports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer, sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("filename", sa.String, nullable=False),
        sa.Column("file_type", sa.String, nullable=False),
        sa.Column("trades_imported", sa.Integer),
        sa.Column("trades_skipped", sa.Integer),
        sa.Column("imported_at", sa.String, server_default=sa.func.now()),
        sa.Index("idx_imports_account", "account_id"),
    )

    op.create_table(
        "trades",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer, sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("broker_trade_id", sa.String),
        sa.Column("symbol", sa.String, nullable=False),
        sa.Column("asset_type", sa.String, nullable=False),
        sa.Column("side", sa.String, nullable=False),
        sa.Column("quantity", sa.Float, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("total", sa.Float, nullable=False),
        sa.Column("fees", sa.Float),
        sa.Column("executed_at", sa.String, nullable=False),
        sa.Column("expiration_date", sa.String),
        sa.Column("review", sa.Integer),
        sa.Column("expired_worthless", sa.Boolean),
        sa.Column("import_id", sa.Integer, sa.ForeignKey("imports.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.String, server_default=sa.func.now()),
        sa.UniqueConstraint("account_id", "broker_trade_id", name="uq_trades_account_broker_trade"),
        sa.Index("idx_trades_account", "account_id"),
        sa.Index("idx_trades_symbol", "symbol"),
        sa.Index("idx_trades_executed_at", "executed_at"),
        sa.Index("idx_trades_asset_type", "asset_type"),
    )

    op.create_table(
        "positions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String),
        sa.Column("notes", sa.Text),
        sa.Column("why", sa.String),
        sa.Column("status", sa.String),
        sa.Column("created_at", sa.String, server_default=sa.func.now()),
        sa.Index("idx_positions_name", "name"),
    )

    op.create_table(
        "position_trades",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("position_id", sa.Integer, sa.ForeignKey("positions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("trade_id", sa.Integer, sa.ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Index("idx_position_trades_position", "position_id"),
    )

    op.create_table(
        "why_options",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("label", sa.String, nullable=False, unique=True),
        sa.Column("note", sa.Text),
        sa.Column("created_at", sa.String, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("why_options")
    op.drop_table("position_trades")
    op.drop_table("positions")
    op.drop_table("trades")
    op.drop_table("imports")
    op.drop_table("accounts")
