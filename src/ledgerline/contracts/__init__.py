"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
ledgerline.core.config.

Import patterns:
    from ledgerline.contracts import Output, SchemaContract, StageName
    from ledgerline.core.config import LedgerlineSettings
"""

from ledgerline.contracts.collaborators import (
    ArtifactFetcher,
    ContentExtractor,
    Discoverer,
    GrantStore,
    Prompt,
    PromptBuilder,
    Publisher,
    StageStore,
)
from ledgerline.contracts.enums import (
    FailureKind,
    ItemState,
    RunStatus,
    StageName,
    StageStatus,
)
from ledgerline.contracts.errors import (
    ArtifactNotYetAvailable,
    ArtifactUnavailable,
    DiscoveryFailure,
    OrchestrationInvariantError,
    PublishFailure,
    ReplayDivergenceError,
    SchemaViolation,
    StageErrorPayload,
    StageFailure,
    StageTimeoutError,
    TransportFailure,
)
from ledgerline.contracts.records import (
    RUN_SCOPE_KEY,
    CandidateItem,
    ItemOutcome,
    Output,
    RawArtifact,
    Run,
    RunParams,
    RunResult,
    StageError,
    StageRecord,
    StageResult,
)
from ledgerline.contracts.schema_contract import FieldConstraint, SchemaContract

__all__ = [
    "RUN_SCOPE_KEY",
    "ArtifactFetcher",
    "ArtifactNotYetAvailable",
    "ArtifactUnavailable",
    "CandidateItem",
    "ContentExtractor",
    "Discoverer",
    "DiscoveryFailure",
    "FailureKind",
    "FieldConstraint",
    "GrantStore",
    "ItemOutcome",
    "ItemState",
    "OrchestrationInvariantError",
    "Output",
    "Prompt",
    "PromptBuilder",
    "PublishFailure",
    "Publisher",
    "RawArtifact",
    "ReplayDivergenceError",
    "Run",
    "RunParams",
    "RunResult",
    "RunStatus",
    "SchemaContract",
    "SchemaViolation",
    "StageError",
    "StageErrorPayload",
    "StageFailure",
    "StageName",
    "StageRecord",
    "StageResult",
    "StageStatus",
    "StageStore",
    "StageTimeoutError",
    "TransportFailure",
]
