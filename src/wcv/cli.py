"""CLI interface for wcv."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated

import structlog
import typer

from wcv import __version__
from wcv.config import ValidatorSettings
from wcv.exceptions import ConfigError, WorkflowParseError
from wcv.log import configure_logging
from wcv.outputs import OutputWriter
from wcv.report import ConsoleReporter
from wcv.runner import RunReport, run_validation
from wcv.workflow.analyzer import WorkflowAnalyzer
from wcv.workflow.constants import DEFAULT_MAX_CONCURRENCY

logger = structlog.get_logger()

app = typer.Typer(
    name="wcv",
    help="Validate the maximum job concurrency of GitHub Actions workflows",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"wcv version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """wcv - workflow concurrency validator."""
    pass


@app.command()
def validate(
    max_concurrency: Annotated[
        str | None,
        typer.Option(
            "--max-concurrency",
            "-m",
            help=(
                "Maximum allowed parallel jobs per workflow "
                "[env: INPUT_MAX_CONCURRENCY]"
            ),
        ),
    ] = None,
    workflow_path: Annotated[
        str | None,
        typer.Option(
            "--workflow-path",
            "-p",
            help=(
                "Workflow directory relative to the workspace "
                "[env: INPUT_WORKFLOW_PATH]"
            ),
        ),
    ] = None,
    fail_on_error: Annotated[
        bool | None,
        typer.Option(
            "--fail-on-error/--no-fail-on-error",
            help="Exit 1 when a workflow exceeds the limit [env: INPUT_FAIL_ON_ERROR]",
        ),
    ] = None,
    workspace: Annotated[
        Path | None,
        typer.Option(
            "--workspace",
            "-w",
            help="Workspace root [env: GITHUB_WORKSPACE]",
            file_okay=False,
            resolve_path=True,
        ),
    ] = None,
    output_file: Annotated[
        Path | None,
        typer.Option(
            "--output-file",
            "-o",
            help="File receiving structured outputs [env: GITHUB_OUTPUT]",
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show debug logs"),
    ] = False,
) -> None:
    """Validate every workflow file under the workflow directory.

    Exits 1 when a workflow exceeds the limit (unless --no-fail-on-error),
    when the configuration is invalid, or when the run aborts.
    """
    try:
        settings = ValidatorSettings.load(
            max_concurrency=max_concurrency,
            workflow_path=workflow_path,
            fail_on_error=fail_on_error,
            workspace=workspace,
            output_file=output_file,
        )
    except ConfigError as e:
        configure_logging(
            annotations=os.environ.get("GITHUB_ACTIONS") == "true", verbose=verbose
        )
        logger.error(f"Fatal error: {e}", field=e.field)
        env_output = os.environ.get("GITHUB_OUTPUT")
        target = output_file or (Path(env_output) if env_output else None)
        report = RunReport.failure(DEFAULT_MAX_CONCURRENCY, f"Fatal error: {e}")
        OutputWriter(target).set_all(report.outputs())
        raise typer.Exit(1) from e

    configure_logging(annotations=settings.annotations, verbose=verbose)
    log = logger.bind(command="validate")
    log.debug(
        "Starting validation",
        workflow_dir=str(settings.workflow_dir),
        max_concurrency=settings.max_concurrency,
    )
    exit_code = run_validation(settings)
    raise typer.Exit(exit_code)


@app.command()
def analyze(
    file: Annotated[
        Path,
        typer.Argument(
            help="Workflow file to analyze",
            exists=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    max_concurrency: Annotated[
        int,
        typer.Option(
            "--max-concurrency",
            "-m",
            help="Maximum allowed parallel jobs",
            min=1,
        ),
    ] = DEFAULT_MAX_CONCURRENCY,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Show debug logs"),
    ] = False,
) -> None:
    """Analyze a single workflow file and show its execution levels."""
    configure_logging(verbose=verbose)
    analyzer = WorkflowAnalyzer(max_concurrency)

    try:
        result = analyzer.analyze_file(file, file.name)
    except WorkflowParseError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        ConsoleReporter().workflow(result)

    if not result.passed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
