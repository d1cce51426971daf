"""Error taxonomy and error payload schemas.

Two families live here:

- Stage failures (``StageFailure`` and subclasses) describe something going
  wrong at an external boundary for ONE item. They are recorded in the
  ledger and turn the item into ``Skipped``; they never abort a run.
- Run-level errors (``DiscoveryFailure``, ``ReplayDivergenceError``,
  ``OrchestrationInvariantError``) abort the run.
"""

from typing import NotRequired, TypedDict

from ledgerline.contracts.enums import FailureKind


class StageErrorPayload(TypedDict):
    """Schema for error payloads stored in stage_records.error_json."""

    kind: str  # FailureKind value
    type: str  # Exception class name (e.g., "TransportFailure")
    message: str
    retryable: bool
    reason: NotRequired[str]  # Machine-readable sub-reason (e.g., "invalid_json")


# =============================================================================
# Stage failures (per item)
# =============================================================================


class StageFailure(Exception):
    """Base class for failures recorded against a single stage.

    Attributes:
        kind: Failure classification stored in the ledger
        retryable: Whether a later run might succeed where this one failed
        reason: Optional machine-readable sub-reason
    """

    kind: FailureKind = FailureKind.TRANSPORT

    def __init__(self, message: str, *, retryable: bool = False, reason: str | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.reason = reason

    def to_payload(self) -> StageErrorPayload:
        payload: StageErrorPayload = {
            "kind": self.kind.value,
            "type": type(self).__name__,
            "message": str(self),
            "retryable": self.retryable,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


class TransportFailure(StageFailure):
    """The external call itself failed: timeout, transport error, non-success status.

    Retryable by default - a later scheduled run may get through.
    """

    kind = FailureKind.TRANSPORT

    def __init__(self, message: str, *, retryable: bool = True, reason: str | None = None) -> None:
        super().__init__(message, retryable=retryable, reason=reason)


class StageTimeoutError(TransportFailure):
    """A stage exceeded its configured timeout."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"Stage '{stage}' exceeded timeout of {timeout:g}s", retryable=True, reason="timeout")
        self.stage = stage
        self.timeout = timeout


class ArtifactNotYetAvailable(TransportFailure):
    """Source content exists in the feed but is not published yet.

    Skipping is temporary; the next run is expected to find it.
    """

    def __init__(self, item_key: str, detail: str = "") -> None:
        message = f"Artifact for '{item_key}' is not available yet"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, retryable=True, reason="not_yet_available")
        self.item_key = item_key


class ArtifactUnavailable(TransportFailure):
    """Source content is permanently gone (deleted, withdrawn, never existed)."""

    def __init__(self, item_key: str, detail: str = "") -> None:
        message = f"Artifact for '{item_key}' is permanently unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, retryable=False, reason="unavailable")
        self.item_key = item_key


class SchemaViolation(StageFailure):
    """A generated reply did not satisfy its contract.

    Not retried within the run.
    """

    kind = FailureKind.SCHEMA

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message, retryable=False, reason=reason)


class PublishFailure(StageFailure):
    """The publish (write) stage failed.

    If the channel accepted the write but the failure happened afterwards,
    this is the bounded at-least-once window: the next run will publish
    again unless the publisher itself is idempotent.
    """

    kind = FailureKind.PUBLISH

    def __init__(self, message: str, *, retryable: bool = True, reason: str | None = None) -> None:
        super().__init__(message, retryable=retryable, reason=reason)


# =============================================================================
# Run-level errors
# =============================================================================


class DiscoveryFailure(Exception):
    """The discovery collaborator failed; no items were processed.

    Nothing is persisted for a run whose discovery failed.
    """

    def __init__(self, message: str, *, pipeline: str | None = None) -> None:
        super().__init__(message)
        self.pipeline = pipeline


class ReplayDivergenceError(Exception):
    """A recorded stage was reached with different inputs than were recorded.

    Replay must reproduce the original decisions; a mismatch means code or
    configuration changed under a run that is being resumed.
    """

    def __init__(self, run_id: str, item_key: str, stage: str, recorded: str, current: str) -> None:
        self.run_id = run_id
        self.item_key = item_key
        self.stage = stage
        self.recorded_fingerprint = recorded
        self.current_fingerprint = current
        super().__init__(
            f"Run {run_id} diverged from its ledger at stage '{stage}' for item '{item_key}': "
            f"recorded input {recorded[:12]} != current input {current[:12]}. "
            "Start a new run instead of resuming this one."
        )


class OrchestrationInvariantError(Exception):
    """Internal invariant broken. Indicates a bug in ledgerline, not bad input."""
