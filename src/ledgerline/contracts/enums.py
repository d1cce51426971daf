"""Status codes and kinds shared across subsystem boundaries.

Values are stored in the ledger database, so renaming a member is a
schema change.
"""

from enum import StrEnum


class RunStatus(StrEnum):
    """Status of a pipeline run.

    Stored in the database (runs.status).
    """

    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


class StageName(StrEnum):
    """Ordered stages an item passes through.

    DISCOVER is run-level (recorded under the reserved empty item key);
    the rest are per-item.
    """

    DISCOVER = "discover"
    FETCH = "fetch"
    EXTRACT = "extract"
    GENERATE = "generate"
    VALIDATE = "validate"
    PUBLISH = "publish"


class StageStatus(StrEnum):
    """Outcome of one recorded stage call.

    Stored in database (stage_records.status).
    """

    SUCCESS = "success"
    FAILED = "failed"


class ItemState(StrEnum):
    """Lifecycle of a candidate item.

    Published and Skipped are terminal; only terminal states are stored
    (item_outcomes.state).
    """

    DISCOVERED = "discovered"
    FETCHED = "fetched"
    EXTRACTED = "extracted"
    GENERATED = "generated"
    VALIDATED = "validated"
    PUBLISHED = "published"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemState.PUBLISHED, ItemState.SKIPPED)


class FailureKind(StrEnum):
    """Why a stage failed (or why an item was set aside).

    Values:
        TRANSPORT: Network, timeout, or non-success reply. Worth another
            attempt on a later run when the error is retryable.
        SCHEMA: Reply did not satisfy the contract. Not retried mid-run.
        PUBLISH: The write stage failed.
        FILTERED: The validated payload was deliberately not selected.
    """

    TRANSPORT = "transport"
    SCHEMA = "schema"
    PUBLISH = "publish"
    FILTERED = "filtered"
