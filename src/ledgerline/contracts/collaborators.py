"""Protocols for the collaborators a pipeline is assembled from.

Feed-specific code (calendar parsers, paper feeds, HTML/PDF extractors,
posting clients) lives outside ledgerline and only has to satisfy these
shapes. Exceptions they raise are captured at the StageExecutor boundary:

- raise ArtifactNotYetAvailable / ArtifactUnavailable from fetch() so the
  ledger records whether a later run is worth it
- any other exception is recorded as a TransportFailure (or PublishFailure
  from publish())
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ledgerline.contracts.records import RawArtifact, StageRecord


@dataclass(frozen=True)
class Prompt:
    """System and user prompt pair for one generation call."""

    system: str
    user: str


@runtime_checkable
class Discoverer(Protocol):
    """Lists candidate item keys for a window, in the order they should be processed."""

    def discover(self, window: Mapping[str, Any]) -> Sequence[str]: ...


@runtime_checkable
class ArtifactFetcher(Protocol):
    """Retrieves source content for one item."""

    def fetch(self, item_key: str) -> RawArtifact: ...


@runtime_checkable
class ContentExtractor(Protocol):
    """Distills a raw artifact into plain text for generation."""

    def extract(self, artifact: RawArtifact) -> str: ...


@runtime_checkable
class PromptBuilder(Protocol):
    """Builds the prompts for one item from its extracted text."""

    def build(self, item_key: str, text: str) -> Prompt: ...


@runtime_checkable
class Publisher(Protocol):
    """The sole externally observable write.

    Idempotency under replay is the publisher's responsibility: the ledger
    cannot close the window between a successful post and its record.
    """

    def publish(self, item_key: str, payload: Mapping[str, Any], credentials: Mapping[str, str]) -> str:
        """Post the payload and return the channel's id for it."""
        ...


class StageStore(Protocol):
    """Durable storage consulted by StageExecutor before every stage call."""

    def get_stage_record(self, run_id: str, item_key: str, stage_name: str) -> StageRecord | None: ...

    def record_stage(self, record: StageRecord) -> StageRecord: ...


class GrantStore(Protocol):
    """Durable last-grant timestamps for the rate limiter."""

    def get_last_grant(self, resource: str) -> float | None: ...

    def record_grant(self, resource: str, granted_at: float) -> None: ...
