"""Ledger: durable run, stage, outcome and output records.

This module provides the replay store:
- LedgerDB: Database connection management
- LedgerRecorder: High-level API for recording and reading run state
- Table definitions for SQLAlchemy Core
"""

from ledgerline.core.ledger.database import LedgerDB, SchemaCompatibilityError
from ledgerline.core.ledger.recorder import LedgerRecorder
from ledgerline.core.ledger.schema import (
    item_outcomes_table,
    metadata,
    outputs_table,
    rate_limit_grants_table,
    runs_table,
    stage_records_table,
)

__all__ = [
    "LedgerDB",
    "LedgerRecorder",
    "SchemaCompatibilityError",
    "item_outcomes_table",
    "metadata",
    "outputs_table",
    "rate_limit_grants_table",
    "runs_table",
    "stage_records_table",
]
