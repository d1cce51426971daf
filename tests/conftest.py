# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/

Test Fixture Philosophy
=======================

Collaborators (discoverer, fetcher, extractor, generation client,
publisher) are in-process fakes from tests.fixtures.pipeline that count
their calls. Every test gets a fresh in-memory ledger, so replay tests
re-use the SAME recorder across two orchestrator runs to simulate a
restart against durable state.
"""

import os

import pytest
from hypothesis import Phase, Verbosity, settings

from ledgerline.core.clock import MockClock
from tests.fixtures.ledger import ledger_db, recorder  # noqa: F401 - re-exported fixtures

# =============================================================================
# Hypothesis Profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture
def mock_clock() -> MockClock:
    """Deterministic clock starting at a fixed epoch."""
    return MockClock(start=1_700_000_000.0)
