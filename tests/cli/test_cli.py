"""Tests for the ledgerline CLI (run and show commands)."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from ledgerline import __version__
from ledgerline.cli import EXIT_INTERRUPTED, app
from ledgerline.contracts import RunResult, RunStatus

runner = CliRunner()

SettingsWriter = Callable[..., Path]


def json_documents(output: str) -> list[dict[str, Any]]:
    """JSON objects printed on their own line; console log lines are skipped."""
    documents = []
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            documents.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return documents


def run_summary(output: str) -> dict[str, Any]:
    summaries = [doc for doc in json_documents(output) if "outputs" in doc]
    assert len(summaries) == 1, output
    return summaries[0]


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"ledgerline version {__version__}" in result.output

    def test_no_args_shows_help(self) -> None:
        result = runner.invoke(app, [])

        assert "run" in result.output
        assert "show" in result.output


class TestRunCommand:
    def test_console_summary(self, write_settings: SettingsWriter) -> None:
        settings = write_settings()

        result = runner.invoke(app, ["run", "-s", str(settings), "--run-id", "r1"])

        assert result.exit_code == 0, result.output
        assert "Run r1: completed" in result.output
        assert "Published: 3" in result.output
        assert "[0] a -> dry-run-" in result.output

    def test_json_summary_reports_skips(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(options={"item_keys": ["a", "b", "c"], "fetch_failures": ["b"]})

        result = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1", "--format", "json"])

        assert result.exit_code == 0, result.output
        summary = run_summary(result.output)
        assert summary["run_id"] == "r1"
        assert summary["status"] == "completed"
        assert summary["published"] == 2
        assert summary["skipped_by_kind"] == {"transport": 1}
        assert [o["item_key"] for o in summary["outputs"]] == ["a", "c"]
        assert summary["outputs"][0]["payload"] == {"tweet": "Post about a"}

    def test_live_publisher_used_without_dry_run(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(publish={"dry_run": False, "min_interval_seconds": 0})

        result = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1", "-f", "json"])

        assert result.exit_code == 0, result.output
        assert [o["published_id"] for o in run_summary(result.output)["outputs"]] == ["post-a", "post-b", "post-c"]

    def test_rerun_with_same_id_replays(self, write_settings: SettingsWriter) -> None:
        settings = write_settings()

        first = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1", "-f", "json"])
        second = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1", "-f", "json"])

        assert second.exit_code == 0, second.output
        assert run_summary(second.output)["outputs"] == run_summary(first.output)["outputs"]

    def test_discovery_failure_exits_1(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(options={"discovery_error": "feed unreachable"})

        result = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1"])

        assert result.exit_code == 1
        assert "Error: Discovery failed for pipeline 'test-pipeline'" in result.output
        assert "feed unreachable" in result.output

    def test_discovery_failure_json_error(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(options={"discovery_error": "feed unreachable"})

        result = runner.invoke(app, ["run", "-s", str(settings), "-f", "json"])

        assert result.exit_code == 1
        errors = [doc for doc in json_documents(result.output) if doc.get("event") == "error"]
        assert errors[0]["error_type"] == "DiscoveryFailure"

    def test_bad_factory_exits_1(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(pipeline="tests.fixtures.pipeline:no_such_factory")

        result = runner.invoke(app, ["run", "-s", str(settings)])

        assert result.exit_code == 1
        assert "Error building pipeline 'tests.fixtures.pipeline:no_such_factory'" in result.output

    def test_interrupted_run_exits_130(self, write_settings: SettingsWriter, monkeypatch: pytest.MonkeyPatch) -> None:
        import ledgerline.engine.orchestrator as orchestrator_module

        def interrupted_run(*args: Any, **kwargs: Any) -> RunResult:
            return RunResult(run_id="r1", status=RunStatus.INTERRUPTED, outputs=[], outcomes=[])

        monkeypatch.setattr(orchestrator_module, "run_pipeline", interrupted_run)
        settings = write_settings()

        result = runner.invoke(app, ["run", "-s", str(settings), "-r", "r1"])

        assert result.exit_code == EXIT_INTERRUPTED
        assert "--run-id r1" in result.output


class TestSettingsErrors:
    def test_missing_settings_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["run", "-s", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Settings file not found" in result.output

    def test_yaml_syntax_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "invalid_syntax.yaml"
        config_file.write_text("pipeline: tests.fixtures.pipeline:build_test_pipeline\noptions: [invalid")

        result = runner.invoke(app, ["run", "-s", str(config_file)])

        assert result.exit_code == 1
        assert "YAML syntax error" in result.output
        assert "traceback" not in result.output.lower()

    def test_validation_errors_listed(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(pipeline="not a factory path")

        result = runner.invoke(app, ["run", "-s", str(settings)])

        assert result.exit_code == 1
        assert "Configuration errors:" in result.output
        assert "pipeline" in result.output

    def test_missing_env_file(self, write_settings: SettingsWriter, tmp_path: Path) -> None:
        settings = write_settings()

        result = runner.invoke(app, ["--env-file", str(tmp_path / "missing.env"), "run", "-s", str(settings)])

        assert result.exit_code == 1
        assert ".env file not found" in result.output


class TestShowCommand:
    def test_console_shows_outcomes(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(options={"item_keys": ["a", "b"], "fetch_failures": ["b"]})
        runner.invoke(app, ["run", "-s", str(settings), "-r", "r1"])

        result = runner.invoke(app, ["show", "r1", "-s", str(settings)])

        assert result.exit_code == 0, result.output
        assert "Run r1 (test-pipeline): completed" in result.output
        assert "[0] a: published dry-run-" in result.output
        assert "[1] b: skipped at fetch: transport (feed timeout) [retryable]" in result.output

    def test_json_items(self, write_settings: SettingsWriter) -> None:
        settings = write_settings(options={"item_keys": ["a", "b"], "fetch_failures": ["b"]})
        runner.invoke(app, ["run", "-s", str(settings), "-r", "r1"])

        result = runner.invoke(app, ["show", "r1", "-s", str(settings), "-f", "json"])

        assert result.exit_code == 0, result.output
        shown = [doc for doc in json_documents(result.output) if "items" in doc][0]
        assert shown["status"] == "completed"
        assert [(i["item_key"], i["state"], i["failed_stage"]) for i in shown["items"]] == [
            ("a", "published", None),
            ("b", "skipped", "fetch"),
        ]
        assert shown["items"][1]["retryable"] is True

    def test_unknown_run(self, write_settings: SettingsWriter) -> None:
        settings = write_settings()

        result = runner.invoke(app, ["show", "missing-run", "-s", str(settings)])

        assert result.exit_code == 1
        assert "run missing-run not found" in result.output
