# tests/cli/conftest.py
"""Shared fixtures and helpers for CLI tests."""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import yaml

TEST_FACTORY = "tests.fixtures.pipeline:build_test_pipeline"

SettingsWriter = Callable[..., Path]


@pytest.fixture(autouse=True)
def _restore_root_handlers() -> Iterator[None]:
    """The CLI callback configures logging against CliRunner's stdout; undo it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def write_settings(tmp_path: Path) -> SettingsWriter:
    """Write a settings YAML using the test pipeline factory and a file ledger.

    Keyword arguments replace top-level sections.
    """

    def _write(**sections: Any) -> Path:
        config: dict[str, Any] = {
            "pipeline": TEST_FACTORY,
            "llm": {"model": "test-model"},
            "ledger": {"url": f"sqlite:///{tmp_path / 'ledger.db'}"},
            "publish": {"dry_run": True, "min_interval_seconds": 0},
            "options": {"item_keys": ["a", "b", "c"]},
        }
        config.update(sections)
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump(config))
        return path

    return _write

