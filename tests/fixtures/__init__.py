# tests/fixtures/__init__.py
"""Shared fixtures and fakes for ledgerline tests.

Available helpers:
- make_ledger_db / make_recorder: in-memory ledger factories
- make_collaborators: counting fakes wired into a PipelineDefinition
"""

from tests.fixtures.ledger import make_ledger_db, make_recorder
from tests.fixtures.pipeline import (
    KEEP_CONTRACT,
    TEST_MODEL,
    TWEET_CONTRACT,
    FakeChatClient,
    FakeCollaborators,
    RecordingPublisher,
    make_collaborators,
    tweet_reply,
)

__all__ = [
    "KEEP_CONTRACT",
    "TEST_MODEL",
    "TWEET_CONTRACT",
    "FakeChatClient",
    "FakeCollaborators",
    "RecordingPublisher",
    "make_collaborators",
    "make_ledger_db",
    "make_recorder",
    "tweet_reply",
]
