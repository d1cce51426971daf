"""ledgerline Command Line Interface.

Entry point for the ledgerline CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from ledgerline import __version__
from ledgerline.contracts import DiscoveryFailure, ReplayDivergenceError, RunParams, RunResult, RunStatus
from ledgerline.core.config import LedgerlineSettings, load_settings, resolve_config

if TYPE_CHECKING:
    from ledgerline.core.ledger import LedgerRecorder

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

# Exit code for a run stopped by SIGINT/SIGTERM (resumable with --run-id)
EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="ledgerline",
    help="ledgerline: durable, replayable discover/generate/publish pipelines.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"ledgerline version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """ledgerline: durable, replayable discover/generate/publish pipelines."""
    # Configure logging before any subcommand runs
    from ledgerline.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_settings_or_exit(settings: str) -> LedgerlineSettings:
    settings_path = Path(settings).expanduser()
    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _result_to_dict(result: RunResult) -> dict[str, Any]:
    return {
        "run_id": result.run_id,
        "status": result.status.value,
        "published": result.published_count,
        "skipped": result.skipped_count,
        "skipped_by_kind": result.skipped_by_kind(),
        "outputs": [
            {
                "item_key": output.item_key,
                "sequence": output.sequence,
                "published_id": output.published_id,
                "payload": dict(output.payload),
            }
            for output in result.outputs
        ],
    }


def _print_summary(result: RunResult, output_format: Literal["console", "json"]) -> None:
    if output_format == "json":
        typer.echo(json.dumps(_result_to_dict(result)))
        return

    typer.echo(f"Run {result.run_id}: {result.status.value}")
    typer.echo(f"  Published: {result.published_count}")
    typer.echo(f"  Skipped: {result.skipped_count}")
    for kind, count in sorted(result.skipped_by_kind().items()):
        typer.echo(f"    {kind}: {count}")
    for output in result.outputs:
        typer.echo(f"  [{output.sequence}] {output.item_key} -> {output.published_id}")


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    run_id: str | None = typer.Option(
        None,
        "--run-id",
        "-r",
        help="Resume (or start) the run with this id. Generated when omitted.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Execute one pipeline run.

    Exit codes: 0 completed, 1 failed (configuration, discovery, divergence),
    130 interrupted (rerun with the printed --run-id to resume).
    """
    from ledgerline.cli_helpers import build_definition, open_ledger
    from ledgerline.core.ledger import LedgerRecorder
    from ledgerline.core.logging import get_logger
    from ledgerline.core.rate_limit import RateLimiter
    from ledgerline.engine.orchestrator import run_pipeline, shutdown_handler_context

    logger = get_logger(__name__)
    config = _load_settings_or_exit(settings)
    logger.debug("settings_loaded", config=resolve_config(config))

    try:
        definition = build_definition(config)
    except Exception as e:
        typer.echo(f"Error building pipeline '{config.pipeline}': {e}", err=True)
        raise typer.Exit(1) from None

    params = RunParams(window=config.window, run_id=run_id, credentials=config.publish.credentials)

    db = open_ledger(config)
    try:
        recorder = LedgerRecorder(db)
        limiter = RateLimiter(config.resource_intervals(), store=recorder)
        with shutdown_handler_context() as shutdown_event:
            result = run_pipeline(definition, params, recorder, limiter=limiter, shutdown_event=shutdown_event)
    except DiscoveryFailure as e:
        _echo_error(e, output_format)
        raise typer.Exit(1) from None
    except ReplayDivergenceError as e:
        _echo_error(e, output_format)
        raise typer.Exit(1) from None
    finally:
        db.close()

    _print_summary(result, output_format)
    if result.status == RunStatus.INTERRUPTED:
        if output_format == "console":
            typer.echo(f"Interrupted. Resume with: ledgerline run -s {settings} --run-id {result.run_id}", err=True)
        raise typer.Exit(EXIT_INTERRUPTED)


def _echo_error(e: Exception, output_format: Literal["console", "json"]) -> None:
    # Structured error for JSON mode, human-readable for console
    if output_format == "json":
        typer.echo(json.dumps({"event": "error", "error": str(e), "error_type": type(e).__name__}), err=True)
    else:
        typer.echo(f"Error: {e}", err=True)


def _show_run(recorder: LedgerRecorder, run_id: str, output_format: Literal["console", "json"]) -> None:
    run_record = recorder.get_run(run_id)
    if run_record is None:
        typer.echo(f"Error: run {run_id} not found", err=True)
        raise typer.Exit(1)

    outcomes = recorder.get_outcomes(run_id)
    outputs = {output.item_key: output for output in recorder.get_outputs(run_id)}

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "run_id": run_record.run_id,
                    "pipeline": run_record.pipeline,
                    "status": run_record.status.value,
                    "items": [
                        {
                            "item_key": o.item_key,
                            "sequence": o.sequence,
                            "state": o.state.value,
                            "failed_stage": o.failed_stage.value if o.failed_stage is not None else None,
                            "kind": o.failure.kind.value if o.failure is not None else None,
                            "retryable": o.failure.retryable if o.failure is not None else None,
                            "published_id": outputs[o.item_key].published_id if o.item_key in outputs else None,
                        }
                        for o in outcomes
                    ],
                }
            )
        )
        return

    typer.echo(f"Run {run_record.run_id} ({run_record.pipeline}): {run_record.status.value}")
    for o in outcomes:
        if o.published:
            typer.echo(f"  [{o.sequence}] {o.item_key}: published {outputs[o.item_key].published_id}")
        else:
            stage = o.failed_stage.value if o.failed_stage is not None else "?"
            detail = f"{o.failure.kind.value} ({o.failure.message})" if o.failure is not None else "unknown"
            retry = " [retryable]" if o.failure is not None and o.failure.retryable else ""
            typer.echo(f"  [{o.sequence}] {o.item_key}: skipped at {stage}: {detail}{retry}")


@app.command()
def show(
    run_id: str = typer.Argument(..., help="Run id to show."),
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file (for the ledger location).",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Show recorded item outcomes for a run."""
    from ledgerline.cli_helpers import open_ledger
    from ledgerline.core.ledger import LedgerRecorder

    config = _load_settings_or_exit(settings)
    db = open_ledger(config)
    try:
        _show_run(LedgerRecorder(db), run_id, output_format)
    finally:
        db.close()


if __name__ == "__main__":
    app()
