"""Run, item, stage and output records.

These are the in-memory shapes of what the ledger stores. Records read
back from the database are our own data: a malformed row is a bug and
crashes rather than being coerced.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ledgerline.contracts.enums import FailureKind, ItemState, RunStatus, StageName, StageStatus
from ledgerline.contracts.errors import StageErrorPayload

# Item key under which run-level stages (discovery) are recorded.
RUN_SCOPE_KEY = ""


@dataclass(frozen=True)
class RunParams:
    """Input parameters for one run.

    Attributes:
        window: Passed verbatim to the discovery collaborator
        run_id: Stable id to resume an interrupted run; generated when None
        credentials: Passed to the publisher; never persisted
    """

    window: Mapping[str, Any] = field(default_factory=dict)
    run_id: str | None = None
    credentials: Mapping[str, str] = field(default_factory=dict, repr=False)

    def audit_dict(self) -> dict[str, Any]:
        """Parameters safe to persist (credentials excluded)."""
        return {"window": dict(self.window)}


@dataclass(frozen=True)
class Run:
    """One pipeline execution as recorded in the ledger."""

    run_id: str
    pipeline: str
    started_at: datetime
    status: RunStatus
    params_hash: str
    completed_at: datetime | None = None


@dataclass(frozen=True)
class StageError:
    """Recorded failure of one stage call."""

    kind: FailureKind
    type: str
    message: str
    retryable: bool
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: StageErrorPayload) -> StageError:
        return cls(
            kind=FailureKind(payload["kind"]),
            type=payload["type"],
            message=payload["message"],
            retryable=payload["retryable"],
            reason=payload.get("reason"),
        )

    def to_payload(self) -> StageErrorPayload:
        payload: StageErrorPayload = {
            "kind": self.kind.value,
            "type": self.type,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class StageRecord:
    """Durable record of one StageExecutor call.

    At most one exists per (run_id, item_key, stage_name).
    """

    record_id: str
    run_id: str
    item_key: str
    stage_name: StageName
    input_fingerprint: str
    status: StageStatus
    result: Any
    error: StageError | None
    started_at: datetime
    completed_at: datetime
    latency_ms: float


@dataclass(frozen=True)
class StageResult:
    """What StageExecutor.execute() hands back.

    Attributes:
        value: Operation result (JSON-compatible) when status is SUCCESS
        error: Failure details when status is FAILED
        replayed: True when served from an existing StageRecord
    """

    stage_name: StageName
    status: StageStatus
    value: Any = None
    error: StageError | None = None
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @classmethod
    def from_record(cls, record: StageRecord, *, replayed: bool) -> StageResult:
        return cls(
            stage_name=record.stage_name,
            status=record.status,
            value=record.result,
            error=record.error,
            replayed=replayed,
        )


@dataclass(frozen=True)
class RawArtifact:
    """Source content for one item, as returned by the fetch collaborator."""

    item_key: str
    content: str
    content_type: str = "text/plain"
    source_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_key": self.item_key,
            "content": self.content,
            "content_type": self.content_type,
            "source_url": self.source_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawArtifact:
        return cls(
            item_key=data["item_key"],
            content=data["content"],
            content_type=data["content_type"],
            source_url=data["source_url"],
        )


@dataclass(frozen=True)
class Output:
    """Externally visible artifact of processing one item.

    Created only after the payload validated against its contract; never
    mutated afterwards.
    """

    run_id: str
    item_key: str
    sequence: int
    payload: Mapping[str, Any]
    contract_hash: str
    published_id: str


@dataclass
class CandidateItem:
    """One unit of work, owned by exactly one ItemPipeline.

    Artifacts are filled in as stages succeed.
    """

    key: str
    sequence: int
    discovered_at: datetime
    state: ItemState = ItemState.DISCOVERED
    artifact: RawArtifact | None = None
    text: str | None = None
    reply: str | None = None
    payload: dict[str, Any] | None = None
    output: Output | None = None
    failure: StageError | None = None
    failed_stage: StageName | None = None


@dataclass(frozen=True)
class ItemOutcome:
    """Terminal state of one item within a run."""

    item_key: str
    sequence: int
    state: ItemState
    failed_stage: StageName | None = None
    failure: StageError | None = None

    @property
    def published(self) -> bool:
        return self.state == ItemState.PUBLISHED


@dataclass(frozen=True)
class RunResult:
    """Everything a run produced.

    ``outputs`` is the sole functional result; the outcome list carries
    skip counts and reasons for observability.
    """

    run_id: str
    status: RunStatus
    outputs: list[Output]
    outcomes: list[ItemOutcome]

    @property
    def published_count(self) -> int:
        return len(self.outputs)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.state == ItemState.SKIPPED)

    def skipped_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for outcome in self.outcomes:
            if outcome.state == ItemState.SKIPPED and outcome.failure is not None:
                kind = outcome.failure.kind.value
                counts[kind] = counts.get(kind, 0) + 1
        return counts
