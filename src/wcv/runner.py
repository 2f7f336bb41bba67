"""Validation run across all workflow files of a workspace."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from wcv.config import ValidatorSettings
from wcv.discovery import display_path, find_workflow_files
from wcv.exceptions import WorkflowParseError
from wcv.outputs import OutputWriter
from wcv.report import ConsoleReporter
from wcv.workflow.aggregator import WorkflowValidationResult
from wcv.workflow.analyzer import WorkflowAnalyzer

logger = structlog.get_logger()


@dataclass
class RunReport:
    """Outcome of a validation run.

    Attributes:
        max_concurrency: Ceiling applied to every workflow.
        files: Workflow files discovered, in analysis order.
        results: Results of the workflows that could be analyzed.
        issues: Human-readable issues (errors, violations, warnings).
        fatal: Whether the run aborted before producing a verdict.
    """

    max_concurrency: int
    files: list[str] = field(default_factory=list)
    results: list[WorkflowValidationResult] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    fatal: bool = False

    @property
    def passed(self) -> bool:
        """Whether every analyzed workflow is within the ceiling."""
        return not self.fatal and all(result.passed for result in self.results)

    @property
    def failed_results(self) -> list[WorkflowValidationResult]:
        return [result for result in self.results if not result.passed]

    @property
    def total_concurrency(self) -> int:
        """Highest concurrency found in any workflow."""
        return max((result.concurrency_count for result in self.results), default=0)

    def outputs(self) -> dict[str, Any]:
        """Structured outputs for the calling workflow."""
        return {
            "validation_passed": self.passed,
            "workflow_results": [result.to_dict() for result in self.results],
            "issues": list(self.issues),
            "total_concurrency": self.total_concurrency,
            "validation_result": {
                "passed": self.passed,
                "total": self.total_concurrency,
                "max": self.max_concurrency,
                "issues": list(self.issues),
            },
        }

    @classmethod
    def failure(cls, max_concurrency: int, message: str) -> RunReport:
        """Report for a run that could not produce a verdict."""
        return cls(max_concurrency=max_concurrency, issues=[message], fatal=True)


class ValidationRunner:
    """Discovers workflow files and validates each one.

    Files are analyzed one at a time in discovery order. A file that cannot
    be read or parsed is recorded as an issue and skipped; it never affects
    the analysis of other files.
    """

    def __init__(
        self,
        settings: ValidatorSettings,
        *,
        analyzer: WorkflowAnalyzer | None = None,
        reporter: ConsoleReporter | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            settings: Run settings.
            analyzer: Workflow analyzer (built from settings by default).
            reporter: Human-readable progress reporter.
        """
        self.settings = settings
        self.analyzer = analyzer or WorkflowAnalyzer(settings.max_concurrency)
        self.reporter = reporter or ConsoleReporter(annotations=settings.annotations)

    def run(self) -> RunReport:
        """Validate every workflow file under the configured directory.

        Returns:
            The run report.
        """
        workflow_dir = self.settings.workflow_dir
        paths = find_workflow_files(workflow_dir)
        report = RunReport(max_concurrency=self.settings.max_concurrency)

        self.reporter.start(len(paths), workflow_dir, self.settings.max_concurrency)
        if not paths:
            logger.warning("No workflow files found", path=str(workflow_dir))

        for path in paths:
            self._validate_file(path, report)

        self.reporter.summary(report)
        return report

    def _validate_file(self, path: Path, report: RunReport) -> None:
        file = display_path(path, self.settings.workspace)
        report.files.append(file)
        log = logger.bind(file=file)

        try:
            result = self.analyzer.analyze_file(path, file)
        except WorkflowParseError as e:
            self._add_issue(report, f"Error processing {file}: {e}")
            return
        except Exception as e:
            log.debug("Unexpected analysis failure", error_type=type(e).__name__)
            self._add_issue(report, f"Error processing {file}: {e}")
            return

        self.reporter.workflow(result)

        for warning in result.warnings:
            self._add_issue(report, f"{file}: {warning}")

        if not result.passed:
            self._add_issue(
                report,
                f"{file}: Workflow has too many parallel jobs "
                f"({result.concurrency_count} > {result.max_concurrency})",
            )

        report.results.append(result)

    @staticmethod
    def _add_issue(report: RunReport, message: str) -> None:
        logger.error(message)
        report.issues.append(message)


def run_validation(
    settings: ValidatorSettings,
    *,
    writer: OutputWriter | None = None,
    reporter: ConsoleReporter | None = None,
) -> int:
    """Run a full validation, write outputs and compute the exit code.

    Unexpected errors abort the run but still produce failed outputs, so the
    calling workflow always receives a structured result.

    Args:
        settings: Run settings.
        writer: Output writer (GITHUB_OUTPUT from settings by default).
        reporter: Progress reporter.

    Returns:
        Process exit code: 1 when the run failed and failures are fatal, or
        when the run aborted; 0 otherwise.
    """
    writer = writer or OutputWriter(settings.output_file)
    try:
        report = ValidationRunner(settings, reporter=reporter).run()
    except Exception as e:
        message = f"Fatal error: {e}"
        logger.error(message)
        writer.set_all(RunReport.failure(settings.max_concurrency, message).outputs())
        return 1

    writer.set_all(report.outputs())
    if not report.passed and settings.fail_on_error:
        return 1
    return 0
