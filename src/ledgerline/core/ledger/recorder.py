"""LedgerRecorder: high-level API for the durable run ledger.

This is the main interface for reading and writing run state. It
implements the StageStore and GrantStore protocols, so StageExecutor and
RateLimiter persist through it without knowing about SQL.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import Executable, select
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError

from ledgerline.contracts import (
    ItemOutcome,
    OrchestrationInvariantError,
    Output,
    Run,
    RunParams,
    RunStatus,
    StageName,
    StageRecord,
    StageStatus,
)
from ledgerline.core.canonical import canonical_json, stable_hash
from ledgerline.core.clock import DEFAULT_CLOCK, Clock, to_datetime
from ledgerline.core.ledger.database import LedgerDB
from ledgerline.core.ledger.repositories import (
    ItemOutcomeRepository,
    OutputRepository,
    RunRepository,
    StageRecordRepository,
)
from ledgerline.core.ledger.schema import (
    item_outcomes_table,
    outputs_table,
    rate_limit_grants_table,
    runs_table,
    stage_records_table,
)
from ledgerline.core.logging import get_logger

logger = get_logger(__name__)


class LedgerRecorder:
    """Reads and writes runs, stage records, outcomes and outputs.

    Example:
        db = LedgerDB.in_memory()
        recorder = LedgerRecorder(db, clock=clock)
        record = recorder.get_stage_record(run_id, "paper-1", "fetch")
    """

    def __init__(self, db: LedgerDB, *, clock: Clock | None = None) -> None:
        """Initialize recorder.

        Args:
            db: Ledger database
            clock: Source of run, outcome and output timestamps
        """
        self._db = db
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._run_repo = RunRepository()
        self._stage_repo = StageRecordRepository()
        self._outcome_repo = ItemOutcomeRepository()
        self._output_repo = OutputRepository()

    def _now(self) -> datetime:
        return to_datetime(self._clock.now())

    # === Query helpers ===

    def _fetchone(self, query: Executable) -> Row[Any] | None:
        with self._db.connection() as conn:
            return conn.execute(query).fetchone()

    def _fetchall(self, query: Executable) -> list[Row[Any]]:
        with self._db.connection() as conn:
            return list(conn.execute(query).fetchall())

    # === Runs ===

    def get_run(self, run_id: str) -> Run | None:
        row = self._fetchone(select(runs_table).where(runs_table.c.run_id == run_id))
        if row is None:
            return None
        return self._run_repo.load(row)

    def begin_run(self, run_id: str, pipeline: str, params: RunParams, discovery: StageRecord) -> Run:
        """Create the run row together with its successful discovery record.

        Both rows are written in one transaction: a run never exists
        without the item list it was started from.

        Raises:
            OrchestrationInvariantError: If the discovery record does not
                belong to this run or did not succeed
        """
        if discovery.run_id != run_id or discovery.stage_name != StageName.DISCOVER:
            raise OrchestrationInvariantError(f"begin_run({run_id}) given a non-discovery record {discovery.record_id}")
        if discovery.status != StageStatus.SUCCESS:
            raise OrchestrationInvariantError(f"begin_run({run_id}) given a failed discovery record")

        audit_params = params.audit_dict()
        run = Run(
            run_id=run_id,
            pipeline=pipeline,
            started_at=self._now(),
            status=RunStatus.RUNNING,
            params_hash=stable_hash(audit_params),
        )
        with self._db.connection() as conn:
            conn.execute(
                runs_table.insert().values(
                    run_id=run.run_id,
                    pipeline=run.pipeline,
                    started_at=run.started_at,
                    params_hash=run.params_hash,
                    params_json=canonical_json(audit_params),
                    status=run.status,
                )
            )
            conn.execute(stage_records_table.insert().values(**self._stage_row(discovery)))
        return run

    def resume_run(self, run_id: str) -> Run:
        """Mark an existing run as running again and return it.

        Raises:
            OrchestrationInvariantError: If the run does not exist
        """
        with self._db.connection() as conn:
            result = conn.execute(
                runs_table.update()
                .where(runs_table.c.run_id == run_id)
                .values(status=RunStatus.RUNNING, completed_at=None)
            )
            if result.rowcount == 0:
                raise OrchestrationInvariantError(f"Cannot resume unknown run {run_id}")
        run = self.get_run(run_id)
        if run is None:
            raise OrchestrationInvariantError(f"Run {run_id} vanished during resume")
        return run

    def complete_run(self, run_id: str, status: RunStatus) -> None:
        """Record the run's final status."""
        with self._db.connection() as conn:
            result = conn.execute(
                runs_table.update()
                .where(runs_table.c.run_id == run_id)
                .values(status=status, completed_at=self._now())
            )
            if result.rowcount == 0:
                raise OrchestrationInvariantError(f"complete_run: run {run_id} does not exist")

    # === Stage records (StageStore) ===

    def get_stage_record(self, run_id: str, item_key: str, stage_name: str) -> StageRecord | None:
        row = self._fetchone(
            select(stage_records_table).where(
                (stage_records_table.c.run_id == run_id)
                & (stage_records_table.c.item_key == item_key)
                & (stage_records_table.c.stage_name == stage_name)
            )
        )
        if row is None:
            return None
        return self._stage_repo.load(row)

    def record_stage(self, record: StageRecord) -> StageRecord:
        """Persist a stage record, keeping the first one written.

        If another writer recorded the same (run, item, stage) first, its
        record wins and is returned instead.
        """
        try:
            with self._db.connection() as conn:
                conn.execute(stage_records_table.insert().values(**self._stage_row(record)))
        except IntegrityError:
            existing = self.get_stage_record(record.run_id, record.item_key, record.stage_name)
            if existing is None:
                # Not a uniqueness race - missing run row or similar
                raise
            logger.warning(
                "stage_record_already_exists",
                run_id=record.run_id,
                item_key=record.item_key,
                stage=record.stage_name.value,
                kept_record_id=existing.record_id,
            )
            return existing
        return record

    def list_stage_records(self, run_id: str) -> list[StageRecord]:
        rows = self._fetchall(
            select(stage_records_table)
            .where(stage_records_table.c.run_id == run_id)
            .order_by(stage_records_table.c.started_at, stage_records_table.c.record_id)
        )
        return [self._stage_repo.load(row) for row in rows]

    @staticmethod
    def _stage_row(record: StageRecord) -> dict[str, Any]:
        return {
            "record_id": record.record_id,
            "run_id": record.run_id,
            "item_key": record.item_key,
            "stage_name": record.stage_name.value,
            "input_fingerprint": record.input_fingerprint,
            "status": record.status.value,
            "result_json": canonical_json(record.result) if record.status == StageStatus.SUCCESS else None,
            "error_json": json.dumps(record.error.to_payload()) if record.error is not None else None,
            "started_at": record.started_at,
            "completed_at": record.completed_at,
            "latency_ms": record.latency_ms,
        }

    # === Item outcomes ===

    def record_outcome(self, run_id: str, outcome: ItemOutcome) -> None:
        """Store an item's terminal state, replacing any earlier one for this run."""
        if not outcome.state.is_terminal:
            raise OrchestrationInvariantError(f"Outcome for '{outcome.item_key}' is not terminal: {outcome.state}")
        failure = outcome.failure
        with self._db.connection() as conn:
            conn.execute(
                item_outcomes_table.delete().where(
                    (item_outcomes_table.c.run_id == run_id) & (item_outcomes_table.c.item_key == outcome.item_key)
                )
            )
            conn.execute(
                item_outcomes_table.insert().values(
                    run_id=run_id,
                    item_key=outcome.item_key,
                    sequence=outcome.sequence,
                    state=outcome.state.value,
                    failed_stage=outcome.failed_stage.value if outcome.failed_stage is not None else None,
                    failure_kind=failure.kind.value if failure is not None else None,
                    error_json=json.dumps(failure.to_payload()) if failure is not None else None,
                    retryable=failure.retryable if failure is not None else None,
                    recorded_at=self._now(),
                )
            )

    def get_outcomes(self, run_id: str) -> list[ItemOutcome]:
        rows = self._fetchall(
            select(item_outcomes_table)
            .where(item_outcomes_table.c.run_id == run_id)
            .order_by(item_outcomes_table.c.sequence)
        )
        return [self._outcome_repo.load(row) for row in rows]

    # === Outputs ===

    def record_output(self, output: Output) -> None:
        """Store a published output. Re-recording the same item is a no-op."""
        try:
            with self._db.connection() as conn:
                conn.execute(
                    outputs_table.insert().values(
                        run_id=output.run_id,
                        item_key=output.item_key,
                        sequence=output.sequence,
                        payload_json=canonical_json(output.payload),
                        contract_hash=output.contract_hash,
                        published_id=output.published_id,
                        created_at=self._now(),
                    )
                )
        except IntegrityError:
            existing = self._fetchone(
                select(outputs_table.c.published_id).where(
                    (outputs_table.c.run_id == output.run_id) & (outputs_table.c.item_key == output.item_key)
                )
            )
            if existing is None:
                raise

    def get_outputs(self, run_id: str) -> list[Output]:
        rows = self._fetchall(
            select(outputs_table).where(outputs_table.c.run_id == run_id).order_by(outputs_table.c.sequence)
        )
        return [self._output_repo.load(row) for row in rows]

    # === Rate limit grants (GrantStore) ===

    def get_last_grant(self, resource: str) -> float | None:
        row = self._fetchone(
            select(rate_limit_grants_table.c.granted_at).where(rate_limit_grants_table.c.resource == resource)
        )
        if row is None:
            return None
        granted_at: float = row.granted_at
        return granted_at

    def record_grant(self, resource: str, granted_at: float) -> None:
        with self._db.connection() as conn:
            result = conn.execute(
                rate_limit_grants_table.update()
                .where(rate_limit_grants_table.c.resource == resource)
                .values(granted_at=granted_at)
            )
            if result.rowcount == 0:
                conn.execute(rate_limit_grants_table.insert().values(resource=resource, granted_at=granted_at))
