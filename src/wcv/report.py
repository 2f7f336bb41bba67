"""Human-readable progress report."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import typer

from wcv.workflow.aggregator import LevelConcurrency, WorkflowValidationResult

if TYPE_CHECKING:
    from wcv.runner import RunReport

RULE = "─" * 80


class ConsoleReporter:
    """Prints the per-workflow breakdown and the final summary.

    With annotations enabled, each workflow and the summary are wrapped in
    collapsible `::group::` blocks.
    """

    def __init__(
        self,
        *,
        annotations: bool = False,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self.annotations = annotations
        self._echo = echo or typer.echo

    @contextmanager
    def group(self, title: str) -> Iterator[None]:
        """Wrap output in a collapsible group."""
        if self.annotations:
            self._echo(f"::group::{title}")
        else:
            self._echo(title)
        try:
            yield
        finally:
            if self.annotations:
                self._echo("::endgroup::")

    def start(self, file_count: int, workflow_dir: Path, max_concurrency: int) -> None:
        self._echo(f"Found {file_count} workflow files to validate in {workflow_dir}")
        self._echo(f"Maximum allowed parallel jobs per workflow: {max_concurrency}")
        self._echo(RULE)

    def workflow(self, result: WorkflowValidationResult) -> None:
        """Print the breakdown of one workflow."""
        status = "✅" if result.passed else "❌"
        count = result.concurrency_count
        title = f"📄 {status} {result.file} ({count} parallel jobs)"
        with self.group(title):
            if not result.levels:
                self._echo("No jobs defined in workflow")
            for level in result.levels:
                self._level(level)
            if result.unplaced_jobs:
                unplaced = ", ".join(result.unplaced_jobs)
                self._echo(f"\nNot analyzed (dependency cycle): {unplaced}")
            self._echo("\nSummary:")
            self._echo(f"Maximum parallel jobs: {result.concurrency_count}")
            self._echo(f"Maximum allowed: {result.max_concurrency}")
            if result.estimated:
                self._echo("Includes estimated matrix sizes for dynamic matrices")
        self._echo(RULE)

    def _level(self, level: LevelConcurrency) -> None:
        self._echo(f"\nParallel execution group {level.index + 1}:")
        for job_id in level.jobs:
            multiplier = level.multipliers.get(job_id, 1)
            suffix = " (estimated)" if job_id in level.estimated_jobs else ""
            if multiplier != 1:
                self._echo(
                    f"➕ Job '{job_id}' with matrix: "
                    f"{multiplier} parallel executions{suffix}"
                )
            else:
                self._echo(f"➕ Job '{job_id}'{suffix}")
        for group, members in level.exclusive_groups.items():
            self._echo(f"🔒 Concurrency group '{group}': {', '.join(members)}")
        if len(level.jobs) > 1:
            self._echo(f"Group total: {level.count} concurrent executions")

    def summary(self, report: RunReport) -> None:
        """Print the final summary of a run."""
        with self.group("🔍 Validation Summary"):
            self._echo(f"\nTotal workflows analyzed: {len(report.files)}")
            self._echo(f"Workflows over the limit: {len(report.failed_results)}")
            if report.issues:
                self._echo("\nIssues found:")
                for issue in report.issues:
                    self._echo(f" - {issue}")
            if report.passed:
                self._echo("\n✅ All workflows passed validation!")
            else:
                self._echo("\n❌ Some workflows have too many parallel jobs.")
