"""Job dependency graph."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from wcv.workflow.definition import JobDefinition

logger = structlog.get_logger()


def normalize_needs(needs: str | list[str] | None) -> tuple[str, ...]:
    """Normalize a `needs` field into an ordered tuple of unique job ids.

    Args:
        needs: A single job id, a list of job ids, or None.

    Returns:
        Job ids in declaration order, without duplicates or blanks.
    """
    if needs is None:
        return ()
    items = [needs] if isinstance(needs, str) else needs
    seen: dict[str, None] = {}
    for item in items:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


@dataclass(frozen=True)
class DependencyGraph:
    """Immutable dependency graph of one workflow.

    Edges point from a job to each job it needs. Dependencies on jobs that
    are not declared in the workflow are kept out of the edge set and
    listed in `missing` instead, so they never block layering.

    Attributes:
        nodes: Job ids in declaration order.
        edges: Job id -> declared dependencies that exist in the workflow.
        missing: Job id -> dependencies that name undeclared jobs.
    """

    nodes: tuple[str, ...]
    edges: Mapping[str, tuple[str, ...]]
    missing: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self.edges

    def dependencies_of(self, job_id: str) -> tuple[str, ...]:
        """Known dependencies of a job, in declaration order."""
        return self.edges.get(job_id, ())

    def dependents_of(self, job_id: str) -> tuple[str, ...]:
        """Jobs that directly depend on `job_id`, in declaration order."""
        return tuple(node for node in self.nodes if job_id in self.edges[node])

    @property
    def self_dependent(self) -> tuple[str, ...]:
        """Jobs that list themselves as a dependency."""
        return tuple(node for node in self.nodes if node in self.edges[node])

    def warnings(self) -> list[str]:
        """Human-readable descriptions of structural anomalies."""
        messages = [
            f"Job '{job_id}' depends on unknown job '{dep}'"
            for job_id, deps in self.missing.items()
            for dep in deps
        ]
        messages.extend(
            f"Job '{job_id}' depends on itself" for job_id in self.self_dependent
        )
        return messages


def build_graph(jobs: Mapping[str, JobDefinition]) -> DependencyGraph:
    """Build the dependency graph for a workflow's jobs.

    Args:
        jobs: Job id -> job definition, in declaration order.

    Returns:
        The dependency graph.
    """
    nodes = tuple(jobs)
    edges: dict[str, tuple[str, ...]] = {}
    missing: dict[str, tuple[str, ...]] = {}

    for job_id, job in jobs.items():
        needs = normalize_needs(job.needs)
        edges[job_id] = tuple(dep for dep in needs if dep in jobs)
        unknown = tuple(dep for dep in needs if dep not in jobs)
        if unknown:
            missing[job_id] = unknown
            logger.debug("Unknown dependency", job=job_id, needs=list(unknown))

    return DependencyGraph(nodes=nodes, edges=edges, missing=missing)
