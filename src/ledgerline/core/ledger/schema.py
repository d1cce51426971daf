"""SQLAlchemy table definitions for the ledger.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

# Shared metadata for all tables
metadata = MetaData()

# === Runs ===

runs_table = Table(
    "runs",
    metadata,
    Column("run_id", String(64), primary_key=True),
    Column("pipeline", String(128), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    # Hash of RunParams.audit_dict() - credentials are never part of it
    Column("params_hash", String(64), nullable=False),
    Column("params_json", Text, nullable=False),
    Column("status", String(32), nullable=False),
)

# === Stage records (the replay log) ===

stage_records_table = Table(
    "stage_records",
    metadata,
    Column("record_id", String(64), primary_key=True),
    Column("run_id", String(64), ForeignKey("runs.run_id"), nullable=False),
    # Empty string for run-level stages (discovery)
    Column("item_key", String(512), nullable=False),
    Column("stage_name", String(32), nullable=False),
    Column("input_fingerprint", String(64), nullable=False),
    Column("status", String(32), nullable=False),
    Column("result_json", Text),  # NULL when status is failed
    Column("error_json", Text),  # NULL when status is success
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True), nullable=False),
    Column("latency_ms", Float, nullable=False),
    # At most one record per stage call - replay depends on it
    UniqueConstraint("run_id", "item_key", "stage_name"),
)

# === Item outcomes (terminal states, observability) ===

item_outcomes_table = Table(
    "item_outcomes",
    metadata,
    Column("run_id", String(64), ForeignKey("runs.run_id"), primary_key=True),
    Column("item_key", String(512), primary_key=True),
    Column("sequence", Integer, nullable=False),
    Column("state", String(32), nullable=False),  # published | skipped
    Column("failed_stage", String(32)),
    Column("failure_kind", String(32)),
    Column("error_json", Text),
    Column("retryable", Boolean),
    Column("recorded_at", DateTime(timezone=True), nullable=False),
)

# === Outputs (published artifacts) ===

outputs_table = Table(
    "outputs",
    metadata,
    Column("run_id", String(64), ForeignKey("runs.run_id"), primary_key=True),
    Column("item_key", String(512), primary_key=True),
    Column("sequence", Integer, nullable=False),
    Column("payload_json", Text, nullable=False),
    Column("contract_hash", String(64), nullable=False),
    Column("published_id", String(256), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

# === Rate limit grants ===

# Last grant per resource, shared across runs and processes
rate_limit_grants_table = Table(
    "rate_limit_grants",
    metadata,
    Column("resource", String(128), primary_key=True),
    # Epoch seconds in the limiter clock's timeline
    Column("granted_at", Float, nullable=False),
)

# === Indexes ===

Index("ix_stage_records_run", stage_records_table.c.run_id)
Index("ix_item_outcomes_run_state", item_outcomes_table.c.run_id, item_outcomes_table.c.state)
Index("ix_outputs_run_sequence", outputs_table.c.run_id, outputs_table.c.sequence)
