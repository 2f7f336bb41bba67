"""Per-workflow analysis: graph, fan-out, levels, aggregation."""

from __future__ import annotations

from pathlib import Path

import structlog

from wcv.workflow.aggregator import WorkflowValidationResult, aggregate
from wcv.workflow.constants import DEFAULT_DYNAMIC_FANOUT, DEFAULT_MAX_CONCURRENCY
from wcv.workflow.definition import WorkflowDefinition
from wcv.workflow.exclusivity import ConcurrencySetting, parse_concurrency
from wcv.workflow.fanout import FanOutResolver, ProviderSizeEstimator
from wcv.workflow.graph import build_graph
from wcv.workflow.levels import partition_levels

logger = structlog.get_logger()


class WorkflowAnalyzer:
    """Measures the maximum job concurrency of workflow definitions.

    The analyzer keeps no state between workflows; analyzing the same
    workflow twice gives the same result.

    Example:
        >>> analyzer = WorkflowAnalyzer(max_concurrency=10)
        >>> result = analyzer.analyze(workflow, "ci.yml")
        >>> result.passed
        True
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        *,
        default_fanout: int = DEFAULT_DYNAMIC_FANOUT,
        estimator: ProviderSizeEstimator | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            max_concurrency: Ceiling applied to each workflow.
            default_fanout: Size assumed for unresolvable dynamic dimensions.
            estimator: Provider size estimator override.
        """
        self.max_concurrency = max_concurrency
        self.default_fanout = default_fanout
        self.estimator = estimator

    def analyze(
        self, workflow: WorkflowDefinition, file: str
    ) -> WorkflowValidationResult:
        """Analyze one parsed workflow.

        Args:
            workflow: The workflow definition.
            file: Path used in the result and in messages.

        Returns:
            The validation result.
        """
        log = logger.bind(file=file)
        settings: list[ConcurrencySetting] = []
        workflow_setting = parse_concurrency(workflow.concurrency, scope="workflow")
        if workflow_setting is not None:
            settings.append(workflow_setting)

        if not workflow.has_jobs:
            log.debug("Workflow has no jobs")

        graph = build_graph(workflow.jobs)
        warnings = graph.warnings()

        fanouts = FanOutResolver(
            workflow.jobs,
            graph,
            estimator=self.estimator,
            default_fanout=self.default_fanout,
        ).resolve()
        settings.extend(
            fanout.concurrency
            for fanout in fanouts.fanouts.values()
            if fanout.concurrency is not None
        )

        partition = partition_levels(graph)
        cycle_warning = partition.warning()
        if cycle_warning:
            warnings.append(cycle_warning)

        for warning in warnings:
            log.warning(warning)

        result = aggregate(
            file,
            partition,
            fanouts,
            max_concurrency=self.max_concurrency,
            warnings=warnings,
            concurrency_settings=settings,
        )
        log.debug(
            "Analyzed workflow",
            concurrency=result.concurrency_count,
            levels=len(result.levels),
            passed=result.passed,
        )
        return result

    def analyze_file(
        self, path: Path, file: str | None = None
    ) -> WorkflowValidationResult:
        """Load and analyze a workflow file.

        Raises:
            WorkflowParseError: If the file can't be read or parsed.
        """
        workflow = WorkflowDefinition.load(path)
        return self.analyze(workflow, file or str(path))
