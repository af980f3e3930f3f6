"""Singleton instances shared across routers and services."""

import os

from tradeledger.database.db_manager import DatabaseManager
from tradeledger.pipeline.position_reconciler import PositionReconciler

db = DatabaseManager(db_url=os.getenv("DATABASE_URL"))
reconciler = PositionReconciler(db)
