# tests/fixtures/ledger.py
"""Ledger database and recorder fixtures.

All fixtures are function-scoped for full test isolation.
No module-scoped databases - every test gets a fresh database.
"""

from __future__ import annotations

import pytest

from ledgerline.core.clock import Clock, MockClock
from ledgerline.core.ledger import LedgerDB, LedgerRecorder


def make_ledger_db() -> LedgerDB:
    """Factory for in-memory LedgerDB."""
    return LedgerDB.in_memory()


def make_recorder(db: LedgerDB | None = None, *, clock: Clock | None = None) -> LedgerRecorder:
    """Factory for LedgerRecorder."""
    if db is None:
        db = make_ledger_db()
    return LedgerRecorder(db, clock=clock)


@pytest.fixture
def ledger_db() -> LedgerDB:
    """Function-scoped in-memory LedgerDB - fresh per test."""
    return make_ledger_db()


@pytest.fixture
def recorder(ledger_db: LedgerDB, mock_clock: MockClock) -> LedgerRecorder:
    """Function-scoped LedgerRecorder stamping rows with the test clock."""
    return LedgerRecorder(ledger_db, clock=mock_clock)
