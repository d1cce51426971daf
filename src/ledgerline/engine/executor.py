"""StageExecutor - runs one named stage call under a timeout and records it.

Every side-effecting call of a run goes through here. Before invoking
the operation the executor consults the StageStore; a recorded outcome
for the same (run_id, item_key, stage_name) is returned as-is and the
operation is NOT called again. This is what makes a resumed run replay
the decisions of the interrupted one.

Guarantee boundary: a crash after an operation's external effect but
before its record is persisted re-runs the operation on resume. For the
publish stage that is the at-least-once window; publishers must be
idempotent to close it.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from ledgerline.contracts import (
    FailureKind,
    OrchestrationInvariantError,
    PublishFailure,
    ReplayDivergenceError,
    StageError,
    StageFailure,
    StageName,
    StageRecord,
    StageResult,
    StageStatus,
    StageStore,
    StageTimeoutError,
    TransportFailure,
)
from ledgerline.core.canonical import canonical_json, stable_hash
from ledgerline.core.clock import DEFAULT_CLOCK, Clock, to_datetime
from ledgerline.core.logging import get_logger

logger = get_logger(__name__)

StageOperation = Callable[[], Any]


def input_fingerprint(stage_name: StageName, inputs: Mapping[str, Any] | None) -> str:
    """Stable hash of what a stage was asked to do."""
    return stable_hash({"stage": stage_name.value, "inputs": dict(inputs) if inputs is not None else {}})


class StageExecutor:
    """Executes stage operations with durable recording.

    Example:
        executor = StageExecutor(recorder, clock=clock)
        result = executor.execute(
            run_id, "paper-1", StageName.FETCH, 60.0,
            lambda: fetcher.fetch("paper-1").to_dict(),
            inputs={"item_key": "paper-1"},
        )
        if result.ok:
            artifact = RawArtifact.from_dict(result.value)
    """

    def __init__(self, store: StageStore, *, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock if clock is not None else DEFAULT_CLOCK

    def lookup(
        self,
        run_id: str,
        item_key: str,
        stage_name: StageName,
        inputs: Mapping[str, Any] | None = None,
    ) -> StageRecord | None:
        """Return the recorded outcome for a stage call, if any.

        Raises:
            ReplayDivergenceError: If a record exists for different inputs
        """
        record = self._store.get_stage_record(run_id, item_key, stage_name.value)
        if record is None:
            return None
        current = input_fingerprint(stage_name, inputs)
        if record.input_fingerprint != current:
            raise ReplayDivergenceError(run_id, item_key, stage_name.value, record.input_fingerprint, current)
        return record

    def execute(
        self,
        run_id: str,
        item_key: str,
        stage_name: StageName,
        timeout: float,
        operation: StageOperation,
        *,
        inputs: Mapping[str, Any] | None = None,
    ) -> StageResult:
        """Run a stage once per run, replaying its recorded outcome thereafter.

        Collaborator exceptions never escape: they become a failed
        StageResult. Only integrity errors (divergence, store failures)
        propagate.

        Args:
            run_id: Run the call belongs to
            item_key: Item key ("" for run-level stages)
            stage_name: Which stage this is
            timeout: Seconds before the call counts as a transport failure
            operation: Zero-argument callable returning a JSON-compatible value
            inputs: What the operation depends on; fingerprinted for replay checks

        Returns:
            StageResult with replayed=True when served from the store

        Raises:
            ReplayDivergenceError: If the recorded inputs differ from these
        """
        existing = self.lookup(run_id, item_key, stage_name, inputs)
        if existing is not None:
            logger.debug(
                "stage_replayed",
                run_id=run_id,
                item_key=item_key,
                stage=stage_name.value,
                status=existing.status.value,
            )
            return StageResult.from_record(existing, replayed=True)

        record = self.attempt(run_id, item_key, stage_name, timeout, operation, inputs=inputs)
        stored = self._store.record_stage(record)
        # Another writer may have won the race; its record is the truth
        return StageResult.from_record(stored, replayed=stored.record_id != record.record_id)

    def attempt(
        self,
        run_id: str,
        item_key: str,
        stage_name: StageName,
        timeout: float,
        operation: StageOperation,
        *,
        inputs: Mapping[str, Any] | None = None,
    ) -> StageRecord:
        """Invoke the operation once and build its record WITHOUT persisting it.

        Used directly when the record must be written together with other
        rows (discovery creates the run row in the same transaction).
        """
        if timeout <= 0:
            raise OrchestrationInvariantError(f"Stage '{stage_name.value}' needs a positive timeout, got {timeout}")

        started = self._clock.now()
        start_mono = self._clock.monotonic()
        value: Any = None
        error: StageError | None = None

        try:
            raw = self._call_with_timeout(stage_name, timeout, operation)
            value = self._to_json_value(stage_name, raw)
        except StageFailure as failure:
            error = StageError.from_payload(self._classify_for_stage(stage_name, failure).to_payload())
        except Exception as exc:
            # Collaborator bug or transport error - record it, skip the item
            wrapped = self._wrap_unexpected(stage_name, exc)
            error = StageError.from_payload(wrapped.to_payload())

        latency_ms = (self._clock.monotonic() - start_mono) * 1000
        completed = self._clock.now()

        if error is not None:
            logger.warning(
                "stage_failed",
                run_id=run_id,
                item_key=item_key,
                stage=stage_name.value,
                kind=error.kind.value,
                error_type=error.type,
                retryable=error.retryable,
                error=error.message,
            )
        else:
            logger.debug("stage_completed", run_id=run_id, item_key=item_key, stage=stage_name.value, latency_ms=latency_ms)

        return StageRecord(
            record_id=uuid.uuid4().hex,
            run_id=run_id,
            item_key=item_key,
            stage_name=stage_name,
            input_fingerprint=input_fingerprint(stage_name, inputs),
            status=StageStatus.SUCCESS if error is None else StageStatus.FAILED,
            result=value,
            error=error,
            started_at=to_datetime(started),
            completed_at=to_datetime(completed),
            latency_ms=latency_ms,
        )

    @staticmethod
    def _call_with_timeout(stage_name: StageName, timeout: float, operation: StageOperation) -> Any:
        # A timed-out worker thread cannot be killed; it is abandoned and
        # its eventual result discarded.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"stage-{stage_name.value}")
        try:
            future = pool.submit(operation)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                if future.done():
                    # The operation raised a TimeoutError of its own
                    raise
                future.cancel()
                raise StageTimeoutError(stage_name.value, timeout) from None
        finally:
            pool.shutdown(wait=False)

    @staticmethod
    def _to_json_value(stage_name: StageName, raw: Any) -> Any:
        """Normalize a result to what the store will hand back on replay.

        A fresh run and its replay must see identical values (tuples become
        lists, keys become strings). A value with no JSON form fails the
        stage; it is never retried.
        """
        try:
            return json.loads(canonical_json(raw))
        except (TypeError, ValueError) as exc:
            message = f"Stage '{stage_name.value}' returned a value that cannot be recorded: {type(raw).__name__} ({exc})"
            failure: StageFailure
            if stage_name == StageName.PUBLISH:
                failure = PublishFailure(message, retryable=False, reason="unrecordable_result")
            else:
                failure = TransportFailure(message, retryable=False, reason="unrecordable_result")
            raise failure from exc

    @staticmethod
    def _classify_for_stage(stage_name: StageName, failure: StageFailure) -> StageFailure:
        # Transport errors from the publisher are publish failures
        if stage_name == StageName.PUBLISH and failure.kind == FailureKind.TRANSPORT:
            wrapped = PublishFailure(str(failure), retryable=failure.retryable, reason=failure.reason)
            wrapped.__cause__ = failure
            return wrapped
        return failure

    @staticmethod
    def _wrap_unexpected(stage_name: StageName, exc: Exception) -> StageFailure:
        message = f"{type(exc).__name__}: {exc}"
        if stage_name == StageName.PUBLISH:
            return PublishFailure(message)
        return TransportFailure(message)
