"""Repository layer for ledger rows.

Handles the seam between SQLAlchemy rows (strings, JSON text) and domain
objects (strict enum types). This is NOT a trust boundary - the ledger is
our own data, so a bad row crashes instead of being coerced.
"""

import json
from typing import Any

from sqlalchemy.engine import Row as SARow

from ledgerline.contracts import (
    FailureKind,
    ItemOutcome,
    ItemState,
    Output,
    Run,
    RunStatus,
    StageError,
    StageName,
    StageRecord,
    StageStatus,
)


class RunRepository:
    """Repository for Run records."""

    def load(self, row: SARow[Any]) -> Run:
        return Run(
            run_id=row.run_id,
            pipeline=row.pipeline,
            started_at=row.started_at,
            status=RunStatus(row.status),  # Convert HERE
            params_hash=row.params_hash,
            completed_at=row.completed_at,
        )


class StageRecordRepository:
    """Repository for StageRecord records.

    Exactly one of result_json / error_json is populated, matching status.
    """

    def load(self, row: SARow[Any]) -> StageRecord:
        status = StageStatus(row.status)
        error: StageError | None = None
        result: Any = None
        if status == StageStatus.SUCCESS:
            if row.result_json is None:
                raise ValueError(f"Stage record {row.record_id} is 'success' but has no result_json")
            result = json.loads(row.result_json)
        else:
            if row.error_json is None:
                raise ValueError(f"Stage record {row.record_id} is 'failed' but has no error_json")
            error = StageError.from_payload(json.loads(row.error_json))

        return StageRecord(
            record_id=row.record_id,
            run_id=row.run_id,
            item_key=row.item_key,
            stage_name=StageName(row.stage_name),
            input_fingerprint=row.input_fingerprint,
            status=status,
            result=result,
            error=error,
            started_at=row.started_at,
            completed_at=row.completed_at,
            latency_ms=row.latency_ms,
        )


class ItemOutcomeRepository:
    """Repository for ItemOutcome records."""

    def load(self, row: SARow[Any]) -> ItemOutcome:
        state = ItemState(row.state)
        failure: StageError | None = None
        if row.error_json is not None:
            failure = StageError.from_payload(json.loads(row.error_json))
            if failure.kind != FailureKind(row.failure_kind):
                raise ValueError(f"Outcome for item '{row.item_key}' has mismatched failure_kind {row.failure_kind!r}")
        return ItemOutcome(
            item_key=row.item_key,
            sequence=row.sequence,
            state=state,
            # Use explicit is not None check - empty string should raise, not become None
            failed_stage=StageName(row.failed_stage) if row.failed_stage is not None else None,
            failure=failure,
        )


class OutputRepository:
    """Repository for Output records."""

    def load(self, row: SARow[Any]) -> Output:
        return Output(
            run_id=row.run_id,
            item_key=row.item_key,
            sequence=row.sequence,
            payload=json.loads(row.payload_json),
            contract_hash=row.contract_hash,
            published_id=row.published_id,
        )
