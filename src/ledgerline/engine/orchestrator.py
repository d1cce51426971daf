"""BatchOrchestrator - discovers a run's items and drives them in order.

A run:
1. Discovers candidate items (a recorded stage; a failure aborts the run
   before anything is persisted)
2. Processes items strictly sequentially, in discovery order, through
   one ItemPipeline
3. Collects the Output of every item that reached Published

Re-invoking with the same run_id replays: recorded stages are served from
the ledger, so the resumed run reaches the same decisions without calling
collaborators again.
"""

from __future__ import annotations

import signal
import threading
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import structlog

from ledgerline.contracts import (
    RUN_SCOPE_KEY,
    CandidateItem,
    DiscoveryFailure,
    ItemOutcome,
    OrchestrationInvariantError,
    Output,
    RunParams,
    RunResult,
    RunStatus,
    StageName,
    StageStatus,
)
from ledgerline.core.clock import DEFAULT_CLOCK, Clock, to_datetime
from ledgerline.core.ledger import LedgerRecorder
from ledgerline.core.logging import get_logger
from ledgerline.core.rate_limit import RateLimiter
from ledgerline.engine.executor import StageExecutor
from ledgerline.engine.pipeline import ItemPipeline, PipelineDefinition

logger = get_logger(__name__)


def _checked_item_keys(keys: Sequence[Any]) -> list[str]:
    """Validate discovered keys; duplicates keep their first position."""
    if isinstance(keys, str) or not isinstance(keys, Sequence):
        raise TypeError(f"discover() must return a sequence of item keys, got {type(keys).__name__}")
    seen: set[str] = set()
    result: list[str] = []
    for key in keys:
        if not isinstance(key, str):
            raise TypeError(f"Item keys must be strings, got {type(key).__name__}: {key!r}")
        if key == RUN_SCOPE_KEY:
            raise ValueError("Item key must not be empty")
        if key in seen:
            logger.warning("duplicate_item_key_dropped", item_key=key)
            continue
        seen.add(key)
        result.append(key)
    return result


@contextmanager
def shutdown_handler_context() -> Iterator[threading.Event]:
    """Install SIGINT/SIGTERM handlers that set a shutdown event.

    On first signal: sets the event, restores default SIGINT handler
    (so second Ctrl-C force-kills via KeyboardInterrupt).

    When called from a non-main thread, signal registration is skipped;
    the returned Event still works but won't be triggered by OS signals.
    """
    shutdown_event = threading.Event()

    if threading.current_thread() is not threading.main_thread():
        yield shutdown_event
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, frame: Any) -> None:
        shutdown_event.set()
        # Restore default SIGINT so second Ctrl-C force-kills
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    try:
        yield shutdown_event
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


class BatchOrchestrator:
    """Runs one pipeline definition against the ledger.

    The orchestrator owns the RateLimiter it hands to its pipeline. Pass a
    shared limiter only when several orchestrators must pace the same
    resource.

    Example:
        db = LedgerDB.from_url("sqlite:///./state/ledger.db")
        orchestrator = BatchOrchestrator(definition, LedgerRecorder(db))
        outputs = orchestrator.run(RunParams(window={"hours": 24}))
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        recorder: LedgerRecorder,
        *,
        limiter: RateLimiter | None = None,
        clock: Clock | None = None,
        min_publish_interval: float = 0.0,
    ) -> None:
        """Initialize orchestrator.

        Args:
            definition: Pipeline collaborators, contract and timeouts
            recorder: Ledger used for stage records, outcomes and grants
            limiter: Rate limiter; one persisting grants to the ledger is
                built from min_publish_interval when None
            clock: Time source for stage timestamps and pacing
            min_publish_interval: Seconds between publishes (when limiter is None)
        """
        self._definition = definition
        self._recorder = recorder
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._limiter = (
            limiter
            if limiter is not None
            else RateLimiter({definition.publish_resource: min_publish_interval}, clock=self._clock, store=recorder)
        )
        self._executor = StageExecutor(recorder, clock=self._clock)

    def run(self, params: RunParams) -> list[Output]:
        """Execute a run and return its published outputs, in discovery order.

        Raises:
            DiscoveryFailure: If discovery failed (nothing was persisted)
        """
        return self.execute(params).outputs

    def execute(self, params: RunParams, *, shutdown_event: threading.Event | None = None) -> RunResult:
        """Execute (or resume) a run.

        Args:
            params: Window, optional run_id, publish credentials
            shutdown_event: Checked between items; when set the run stops
                and is marked interrupted

        Returns:
            RunResult with outputs and per-item outcomes

        Raises:
            DiscoveryFailure: If discovery failed
            ReplayDivergenceError: If a resumed run's inputs no longer match
                its recorded stages
        """
        run_id = params.run_id or uuid.uuid4().hex
        with structlog.contextvars.bound_contextvars(run_id=run_id, pipeline=self._definition.name):
            keys = self._discover(run_id, params)
            try:
                result = self._process_items(run_id, keys, params, shutdown_event)
            except KeyboardInterrupt:
                self._recorder.complete_run(run_id, RunStatus.INTERRUPTED)
                raise
            except Exception:
                self._recorder.complete_run(run_id, RunStatus.FAILED)
                raise
            self._recorder.complete_run(run_id, result.status)

            by_kind = result.skipped_by_kind()
            logger.info(
                "run_completed",
                status=result.status.value,
                discovered=len(keys),
                processed=len(result.outcomes),
                published=result.published_count,
                skipped=result.skipped_count,
                **{f"skipped_{kind}": count for kind, count in sorted(by_kind.items())},
            )
            return result

    def _discover(self, run_id: str, params: RunParams) -> list[str]:
        """Return the run's item keys, recording discovery on first use.

        A new run's row and its discovery record are written together, only
        once discovery succeeded.
        """
        d = self._definition
        inputs = {"pipeline": d.name, "window": dict(params.window)}

        existing_run = self._recorder.get_run(run_id)
        if existing_run is not None:
            record = self._executor.lookup(run_id, RUN_SCOPE_KEY, StageName.DISCOVER, inputs)
            if record is None or record.status != StageStatus.SUCCESS:
                raise OrchestrationInvariantError(f"Run {run_id} exists without a successful discovery record")
            self._recorder.resume_run(run_id)
            keys = list(record.result)
            logger.info("run_resumed", items=len(keys), previous_status=existing_run.status.value)
            return keys

        window: Mapping[str, Any] = params.window
        record = self._executor.attempt(
            run_id,
            RUN_SCOPE_KEY,
            StageName.DISCOVER,
            d.timeouts.for_stage(StageName.DISCOVER),
            lambda: _checked_item_keys(d.discoverer.discover(window)),
            inputs=inputs,
        )
        if record.status != StageStatus.SUCCESS:
            message = record.error.message if record.error is not None else "unknown error"
            logger.error("discovery_failed", error=message)
            raise DiscoveryFailure(f"Discovery failed for pipeline '{d.name}': {message}", pipeline=d.name)

        self._recorder.begin_run(run_id, d.name, params, record)
        keys = list(record.result)
        logger.info("run_started", items=len(keys))
        return keys

    def _process_items(
        self,
        run_id: str,
        keys: list[str],
        params: RunParams,
        shutdown_event: threading.Event | None,
    ) -> RunResult:
        discovery = self._recorder.get_stage_record(run_id, RUN_SCOPE_KEY, StageName.DISCOVER.value)
        discovered_at = discovery.completed_at if discovery is not None else to_datetime(self._clock.now())

        pipeline = ItemPipeline(
            self._definition,
            self._executor,
            self._limiter,
            run_id=run_id,
            credentials=params.credentials,
        )

        outputs: list[Output] = []
        outcomes: list[ItemOutcome] = []
        status = RunStatus.COMPLETED

        for sequence, key in enumerate(keys):
            # Cancellation only between items: an in-flight stage always finishes
            if shutdown_event is not None and shutdown_event.is_set():
                status = RunStatus.INTERRUPTED
                logger.warning("run_interrupted", processed=sequence, remaining=len(keys) - sequence)
                break

            item = CandidateItem(key=key, sequence=sequence, discovered_at=discovered_at)
            outcome = pipeline.process(item)
            self._recorder.record_outcome(run_id, outcome)
            if item.output is not None:
                if outputs and outputs[-1].sequence >= item.output.sequence:
                    raise OrchestrationInvariantError(f"Output for '{key}' published out of discovery order")
                self._recorder.record_output(item.output)
                outputs.append(item.output)
            outcomes.append(outcome)

        return RunResult(run_id=run_id, status=status, outputs=outputs, outcomes=outcomes)


def run_pipeline(
    definition: PipelineDefinition,
    params: RunParams,
    recorder: LedgerRecorder,
    *,
    limiter: RateLimiter | None = None,
    clock: Clock | None = None,
    min_publish_interval: float = 0.0,
    shutdown_event: threading.Event | None = None,
) -> RunResult:
    """Single entry point for schedulers and the CLI.

    Raises:
        DiscoveryFailure: If discovery failed (no outputs, nothing persisted)
    """
    orchestrator = BatchOrchestrator(
        definition,
        recorder,
        limiter=limiter,
        clock=clock,
        min_publish_interval=min_publish_interval,
    )
    return orchestrator.execute(params, shutdown_event=shutdown_event)
