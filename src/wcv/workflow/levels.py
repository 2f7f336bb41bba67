"""Topological layering of the job graph into execution levels."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from wcv.workflow.graph import DependencyGraph

logger = structlog.get_logger()


class PartitionStatus(str, Enum):
    """Outcome of level partitioning."""

    COMPLETE = "complete"
    PARTIAL_WITH_CYCLE = "partial_with_cycle"


@dataclass(frozen=True)
class LevelPartition:
    """Jobs grouped into levels of simultaneously ready jobs.

    Attributes:
        levels: Ordered levels; each level keeps workflow declaration order.
        unplaced: Jobs that could not be placed because of a dependency cycle.
    """

    levels: tuple[tuple[str, ...], ...]
    unplaced: tuple[str, ...] = ()

    @property
    def status(self) -> PartitionStatus:
        if self.unplaced:
            return PartitionStatus.PARTIAL_WITH_CYCLE
        return PartitionStatus.COMPLETE

    @property
    def is_complete(self) -> bool:
        return self.status is PartitionStatus.COMPLETE

    def level_of(self, job_id: str) -> int | None:
        """Index of the level containing `job_id`, or None if unplaced."""
        for index, level in enumerate(self.levels):
            if job_id in level:
                return index
        return None

    def warning(self) -> str | None:
        """Describe the cycle condition, if any."""
        if self.is_complete:
            return None
        jobs = ", ".join(self.unplaced)
        return f"Potential circular dependency detected between jobs: {jobs}"


def partition_levels(graph: DependencyGraph) -> LevelPartition:
    """Group the graph's jobs into execution levels.

    Level-synchronous Kahn layering: each pass takes every unplaced job whose
    dependencies were all placed by earlier passes. A pass that places
    nothing while jobs remain means a cycle; the levels found so far are
    kept and the remaining jobs are reported as unplaced.

    Args:
        graph: Dependency graph of one workflow.

    Returns:
        The level partition.
    """
    remaining = list(graph.nodes)
    placed: set[str] = set()
    levels: list[tuple[str, ...]] = []

    while remaining:
        ready = tuple(
            job_id
            for job_id in remaining
            if all(dep in placed for dep in graph.dependencies_of(job_id))
        )
        if not ready:
            logger.warning("Dependency cycle detected", jobs=remaining)
            return LevelPartition(levels=tuple(levels), unplaced=tuple(remaining))

        levels.append(ready)
        placed.update(ready)
        remaining = [job_id for job_id in remaining if job_id not in placed]

    return LevelPartition(levels=tuple(levels))
