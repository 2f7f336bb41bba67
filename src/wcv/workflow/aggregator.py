"""Per-level concurrency aggregation and per-file validation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from wcv.workflow.exclusivity import ConcurrencySetting
from wcv.workflow.fanout import FanOutTable, OutputProvider
from wcv.workflow.levels import LevelPartition, PartitionStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class LevelConcurrency:
    """Width of one execution level.

    Attributes:
        index: Zero-based level index.
        jobs: Jobs in the level, in declaration order.
        count: Simultaneous job instances in the level.
        multipliers: Job id -> fan-out multiplier.
        exclusive_groups: Exclusive group -> jobs that share it.
        estimated_jobs: Jobs whose multiplier uses the default fan-out.
    """

    index: int
    jobs: tuple[str, ...]
    count: int
    multipliers: dict[str, int] = field(default_factory=dict)
    exclusive_groups: dict[str, tuple[str, ...]] = field(default_factory=dict)
    estimated_jobs: tuple[str, ...] = ()

    def to_dict(self, file: str) -> dict[str, Any]:
        data: dict[str, Any] = {
            "file": file,
            "level": self.index + 1,
            "jobs": list(self.jobs),
            "count": self.count,
            "counted": True,
            "multipliers": dict(self.multipliers),
        }
        if self.exclusive_groups:
            data["exclusive_groups"] = {
                group: list(jobs) for group, jobs in self.exclusive_groups.items()
            }
        if self.estimated_jobs:
            data["estimated_jobs"] = list(self.estimated_jobs)
        return data


@dataclass(frozen=True)
class WorkflowValidationResult:
    """Outcome of analyzing one workflow file.

    Attributes:
        file: Workflow path, relative to the workspace.
        concurrency_count: Largest level width.
        passed: Whether `concurrency_count` is within the ceiling.
        max_concurrency: The ceiling applied.
        levels: Per-level breakdown.
        partition_status: Whether layering completed or stopped at a cycle.
        unplaced_jobs: Jobs left out by a cycle.
        warnings: Structural anomalies found while analyzing.
        estimated: Whether any multiplier relies on the default fan-out.
        providers: Output providers and their consumers.
        concurrency_settings: Declared concurrency groups.
    """

    file: str
    concurrency_count: int
    passed: bool
    max_concurrency: int
    levels: tuple[LevelConcurrency, ...] = ()
    partition_status: PartitionStatus = PartitionStatus.COMPLETE
    unplaced_jobs: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    estimated: bool = False
    providers: tuple[OutputProvider, ...] = ()
    concurrency_settings: tuple[ConcurrencySetting, ...] = ()

    @property
    def details(self) -> list[dict[str, Any]]:
        """Per-level breakdown as plain dictionaries."""
        return [level.to_dict(self.file) for level in self.levels]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "file": self.file,
            "concurrencyCount": self.concurrency_count,
            "passed": self.passed,
            "maxConcurrency": self.max_concurrency,
            "details": self.details,
            "partition": self.partition_status.value,
            "unplacedJobs": list(self.unplaced_jobs),
            "warnings": list(self.warnings),
            "estimated": self.estimated,
            "providers": [provider.to_dict() for provider in self.providers],
            "concurrencySettings": [
                setting.to_dict() for setting in self.concurrency_settings
            ],
        }


def level_concurrency(
    index: int, jobs: tuple[str, ...], fanouts: FanOutTable
) -> LevelConcurrency:
    """Compute the width of one level.

    Each job contributes its fan-out multiplier. Jobs sharing an exclusive
    concurrency group contribute 1 for the whole group, since at most one
    of their instances runs at a time.

    Args:
        index: Level index.
        jobs: Jobs in the level.
        fanouts: Resolved fan-out table.

    Returns:
        The level's concurrency.
    """
    count = 0
    multipliers: dict[str, int] = {}
    groups: dict[str, list[str]] = {}
    counted_groups: set[str] = set()
    estimated: list[str] = []

    for job_id in jobs:
        multiplier = fanouts.multiplier(job_id)
        multipliers[job_id] = multiplier
        fanout = fanouts.fanouts.get(job_id)
        if fanout is not None and not fanout.exact:
            estimated.append(job_id)
        exclusive_key = fanout.exclusive_key if fanout else None
        if exclusive_key is None:
            count += multiplier
            continue
        if exclusive_key not in counted_groups and multiplier > 0:
            counted_groups.add(exclusive_key)
            count += 1
        groups.setdefault(exclusive_key, []).append(job_id)

    logger.debug("Level concurrency", group=index + 1, jobs=list(jobs), count=count)
    return LevelConcurrency(
        index=index,
        jobs=jobs,
        count=count,
        multipliers=multipliers,
        exclusive_groups={group: tuple(members) for group, members in groups.items()},
        estimated_jobs=tuple(estimated),
    )


def aggregate(
    file: str,
    partition: LevelPartition,
    fanouts: FanOutTable,
    *,
    max_concurrency: int,
    warnings: list[str] | None = None,
    concurrency_settings: list[ConcurrencySetting] | None = None,
) -> WorkflowValidationResult:
    """Build the validation result for one workflow.

    The reported concurrency is the widest level: levels run one after
    another, so their widths never add up.

    Args:
        file: Workflow path for reporting.
        partition: Execution levels.
        fanouts: Resolved fan-out table.
        max_concurrency: Ceiling to validate against.
        warnings: Structural warnings collected by earlier stages.
        concurrency_settings: Declared concurrency groups, for diagnostics.

    Returns:
        The validation result.
    """
    levels = tuple(
        level_concurrency(index, jobs, fanouts)
        for index, jobs in enumerate(partition.levels)
        if jobs
    )
    concurrency_count = max((level.count for level in levels), default=0)
    estimated = any(not fanout.exact for fanout in fanouts.fanouts.values())

    return WorkflowValidationResult(
        file=file,
        concurrency_count=concurrency_count,
        passed=concurrency_count <= max_concurrency,
        max_concurrency=max_concurrency,
        levels=levels,
        partition_status=partition.status,
        unplaced_jobs=partition.unplaced,
        warnings=tuple(warnings or ()),
        estimated=estimated,
        providers=tuple(fanouts.providers.values()),
        concurrency_settings=tuple(concurrency_settings or ()),
    )
