"""Matrix fan-out resolution.

Every job expands into some number of simultaneous instances: 1 for an
ordinary job, the product of the dimension sizes for a matrix job. Dynamic
dimensions (values produced by another job at runtime) cannot be known
statically, so their size is estimated through an ordered list of
heuristics; the first one that succeeds wins:

1. the provider job's steps write an array literal to the referenced output
2. the expression itself embeds an array literal
3. another sized output of the referenced job, or of a job this job needs
4. DEFAULT_DYNAMIC_FANOUT

Only heuristic 4 is marked as inexact in the diagnostics.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from wcv.workflow.constants import DEFAULT_DYNAMIC_FANOUT, MATRIX_RESERVED_KEYS
from wcv.workflow.definition import JobDefinition
from wcv.workflow.exclusivity import ConcurrencySetting, parse_concurrency
from wcv.workflow.graph import DependencyGraph
from wcv.workflow.literals import (
    OutputReference,
    find_inline_literal_size,
    find_output_reference,
    find_step_reference,
    is_expression,
    scan_output_assignments,
)

logger = structlog.get_logger()

# Dimension name used when the whole matrix is one expression
WHOLE_MATRIX = "matrix"


class SizeSource(str, Enum):
    """Where a dimension or provider size came from."""

    STATIC = "static"
    STEP_OUTPUT = "step_output"
    INLINE_LITERAL = "inline_literal"
    DEPENDENCY_PROVIDER = "dependency_provider"
    DEFAULT = "default"


@dataclass(frozen=True)
class DimensionSize:
    """Resolved size of one matrix dimension.

    Attributes:
        name: Dimension name.
        size: Number of values.
        source: Heuristic that produced the size.
        provider: `job.output` key of the provider used, if any.
    """

    name: str
    size: int
    source: SizeSource
    provider: str | None = None

    @property
    def exact(self) -> bool:
        return self.source is not SizeSource.DEFAULT

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "size": self.size,
            "source": self.source.value,
            "exact": self.exact,
        }
        if self.provider:
            data["provider"] = self.provider
        return data


@dataclass(frozen=True)
class OutputProvider:
    """A job output believed to carry a collection.

    Attributes:
        provider_task_id: Job declaring the output.
        output_key: Output name.
        estimated_size: Estimated number of elements (>= 1).
        source: How the size was estimated; DEFAULT means unknown.
        consumers: Jobs whose matrix reads this output.
    """

    provider_task_id: str
    output_key: str
    estimated_size: int
    source: SizeSource = SizeSource.DEFAULT
    consumers: frozenset[str] = frozenset()

    @property
    def key(self) -> str:
        return f"{self.provider_task_id}.{self.output_key}"

    @property
    def sized(self) -> bool:
        return self.source is not SizeSource.DEFAULT

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.provider_task_id,
            "output": self.output_key,
            "size": self.estimated_size,
            "source": self.source.value,
            "consumers": sorted(self.consumers),
        }


@dataclass(frozen=True)
class FanOut:
    """Number of simultaneous instances one job expands into.

    Attributes:
        job_id: The job.
        multiplier: Simultaneous instances (after max-parallel).
        combinations: Matrix combinations before max-parallel.
        dimensions: Resolved dimensions, in declaration order.
        max_parallel: Declared max-parallel cap, if any.
        concurrency: Job-level concurrency declaration, if any.
    """

    job_id: str
    multiplier: int = 1
    combinations: int = 1
    dimensions: tuple[DimensionSize, ...] = ()
    max_parallel: int | None = None
    concurrency: ConcurrencySetting | None = None

    @property
    def is_matrix(self) -> bool:
        return bool(self.dimensions)

    @property
    def exact(self) -> bool:
        return all(dim.exact for dim in self.dimensions)

    @property
    def exclusive_key(self) -> str | None:
        if self.concurrency is None:
            return None
        return self.concurrency.exclusive_key

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "job": self.job_id,
            "multiplier": self.multiplier,
            "exact": self.exact,
        }
        if self.dimensions:
            data["combinations"] = self.combinations
            data["dimensions"] = [dim.to_dict() for dim in self.dimensions]
        if self.max_parallel is not None:
            data["max_parallel"] = self.max_parallel
        if self.exclusive_key is not None:
            data["exclusive_group"] = self.exclusive_key
        return data


@dataclass(frozen=True)
class FanOutTable:
    """Fan-out of every job in a workflow plus the output providers."""

    fanouts: Mapping[str, FanOut]
    providers: Mapping[str, OutputProvider] = field(default_factory=dict)

    def multiplier(self, job_id: str) -> int:
        fanout = self.fanouts.get(job_id)
        return fanout.multiplier if fanout else 1

    def __getitem__(self, job_id: str) -> FanOut:
        return self.fanouts[job_id]


class ProviderSizeEstimator:
    """Estimates the size of collections emitted through job outputs.

    The estimate is purely textual: it looks for array literals written to
    `$GITHUB_OUTPUT` by the provider's steps, then for an array literal in
    the output expression itself.
    """

    def estimate(
        self, job: JobDefinition, output_key: str, output_value: str
    ) -> tuple[int, SizeSource] | None:
        """Estimate one output's size.

        Args:
            job: The provider job.
            output_key: The job output name.
            output_value: The job output expression.

        Returns:
            (size, source), or None when nothing could be recognized.
        """
        step_sizes = self._step_output_sizes(job)
        step_ref = find_step_reference(output_value)
        if step_ref is not None and step_ref in step_sizes:
            return max(step_sizes[step_ref], 1), SizeSource.STEP_OUTPUT
        for (_, key), size in step_sizes.items():
            if key == output_key:
                return max(size, 1), SizeSource.STEP_OUTPUT

        inline = find_inline_literal_size(output_value)
        if inline is not None:
            return max(inline, 1), SizeSource.INLINE_LITERAL
        return None

    def _step_output_sizes(
        self, job: JobDefinition
    ) -> dict[tuple[str | None, str], int]:
        sizes: dict[tuple[str | None, str], int] = {}
        for step_id, script in job.run_scripts():
            for key, size in scan_output_assignments(script).items():
                sizes[(step_id, key)] = size
        return sizes


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number > 0 else None
    return None


class FanOutResolver:
    """Computes the fan-out multiplier of every job in one workflow.

    Example:
        >>> resolver = FanOutResolver(workflow.jobs, build_graph(workflow.jobs))
        >>> table = resolver.resolve()
        >>> table.multiplier("test")
        4
    """

    def __init__(
        self,
        jobs: Mapping[str, JobDefinition],
        graph: DependencyGraph,
        *,
        estimator: ProviderSizeEstimator | None = None,
        default_fanout: int = DEFAULT_DYNAMIC_FANOUT,
    ) -> None:
        """Initialize the resolver.

        Args:
            jobs: Job id -> definition.
            graph: Dependency graph built from the same jobs.
            estimator: Provider size estimator (textual heuristics by default).
            default_fanout: Size assumed for a dimension nothing can size.
        """
        self.jobs = jobs
        self.graph = graph
        self.estimator = estimator or ProviderSizeEstimator()
        self.default_fanout = default_fanout
        self._providers: dict[str, OutputProvider] = {}
        self._consumers: dict[str, set[str]] = {}

    def resolve(self) -> FanOutTable:
        """Resolve every job's fan-out.

        Returns:
            The fan-out table, with consumers linked to their providers.
        """
        self._providers = self._find_providers()
        self._consumers = {key: set() for key in self._providers}

        fanouts = {
            job_id: self._resolve_job(job_id, job)
            for job_id, job in self.jobs.items()
        }

        providers = {
            key: OutputProvider(
                provider_task_id=provider.provider_task_id,
                output_key=provider.output_key,
                estimated_size=provider.estimated_size,
                source=provider.source,
                consumers=frozenset(self._consumers[key]),
            )
            for key, provider in self._providers.items()
        }
        return FanOutTable(fanouts=fanouts, providers=providers)

    def _find_providers(self) -> dict[str, OutputProvider]:
        providers: dict[str, OutputProvider] = {}
        for job_id, job in self.jobs.items():
            for output_key, value in job.outputs.items():
                if not isinstance(value, str):
                    continue
                estimate = self.estimator.estimate(job, str(output_key), value)
                if estimate is None:
                    size, source = self.default_fanout, SizeSource.DEFAULT
                else:
                    size, source = estimate
                provider = OutputProvider(
                    provider_task_id=job_id,
                    output_key=str(output_key),
                    estimated_size=size,
                    source=source,
                )
                providers[provider.key] = provider
                logger.debug(
                    "Found output provider",
                    provider=provider.key,
                    size=size,
                    source=source.value,
                )
        return providers

    def _resolve_job(self, job_id: str, job: JobDefinition) -> FanOut:
        concurrency = parse_concurrency(job.concurrency, scope="job", job_id=job_id)
        matrix = job.matrix
        if matrix is None:
            return FanOut(job_id=job_id, concurrency=concurrency)

        if isinstance(matrix, str):
            if not is_expression(matrix):
                return FanOut(job_id=job_id, concurrency=concurrency)
            dimensions = [self._resolve_dimension(job_id, WHOLE_MATRIX, matrix)]
            combinations = dimensions[0].size
        else:
            dimensions, combinations = self._resolve_mapping(job_id, matrix)

        max_parallel = None
        if job.strategy is not None:
            max_parallel = _positive_int(job.strategy.max_parallel)
        multiplier = combinations
        if max_parallel is not None:
            multiplier = min(multiplier, max_parallel)

        fanout = FanOut(
            job_id=job_id,
            multiplier=multiplier,
            combinations=combinations,
            dimensions=tuple(dimensions),
            max_parallel=max_parallel,
            concurrency=concurrency,
        )
        logger.debug(
            "Resolved matrix",
            job=job_id,
            multiplier=multiplier,
            exact=fanout.exact,
        )
        return fanout

    def _resolve_mapping(
        self, job_id: str, matrix: dict[str, Any]
    ) -> tuple[list[DimensionSize], int]:
        dimensions: list[DimensionSize] = []
        static_values: dict[str, list[Any]] = {}

        for name, value in matrix.items():
            name = str(name)
            if name in MATRIX_RESERVED_KEYS:
                continue
            if isinstance(value, list):
                static_values[name] = value
                dimensions.append(DimensionSize(name, len(value), SizeSource.STATIC))
            elif isinstance(value, str) and is_expression(value):
                dimensions.append(self._resolve_dimension(job_id, name, value))
            else:
                dimensions.append(DimensionSize(name, 1, SizeSource.STATIC))

        include = matrix.get("include")
        exclude = matrix.get("exclude")

        if not dimensions:
            if isinstance(include, list):
                dimensions.append(
                    DimensionSize("include", len(include), SizeSource.STATIC)
                )
                return dimensions, len(include)
            if isinstance(include, str) and is_expression(include):
                dimension = self._resolve_dimension(job_id, "include", include)
                return [dimension], dimension.size
            return dimensions, 1

        sizes = {dim.name: dim.size for dim in dimensions}
        combinations = math.prod(sizes.values())
        if isinstance(exclude, list):
            removed = self._excluded(exclude, static_values, sizes)
            combinations = max(combinations - removed, 0)
        if isinstance(include, list):
            combinations += self._included(include, static_values, sizes)
        return dimensions, combinations

    @staticmethod
    def _excluded(
        entries: list[Any], static_values: dict[str, list[Any]], sizes: dict[str, int]
    ) -> int:
        """Count combinations removed by `exclude` entries."""
        removed = 0
        for entry in entries:
            if not isinstance(entry, dict) or not entry:
                continue
            keys = [str(key) for key in entry]
            if any(key not in static_values for key in keys):
                continue
            if all(entry[key] in static_values[str(key)] for key in entry):
                removed += math.prod(
                    size for name, size in sizes.items() if name not in keys
                )
        return removed

    @staticmethod
    def _included(
        entries: list[Any], static_values: dict[str, list[Any]], sizes: dict[str, int]
    ) -> int:
        """Count combinations added by `include` entries."""
        added = 0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            shared = [key for key in entry if str(key) in sizes]
            if any(
                str(key) in static_values and entry[key] not in static_values[str(key)]
                for key in shared
            ):
                added += 1
        return added

    def _resolve_dimension(
        self, job_id: str, name: str, expression: str
    ) -> DimensionSize:
        reference = find_output_reference(expression)

        if reference is not None:
            provider = self._providers.get(reference.key)
            if provider is not None:
                self._consumers[provider.key].add(job_id)
                if provider.sized:
                    return DimensionSize(
                        name, provider.estimated_size, provider.source, provider.key
                    )

        inline = find_inline_literal_size(expression)
        if inline is not None:
            return DimensionSize(name, inline, SizeSource.INLINE_LITERAL)

        if reference is None or reference.job_id in self.jobs:
            provider = self._lookup_related_provider(job_id, reference)
            if provider is not None:
                self._consumers[provider.key].add(job_id)
                return DimensionSize(
                    name,
                    provider.estimated_size,
                    SizeSource.DEPENDENCY_PROVIDER,
                    provider.key,
                )

        logger.debug(
            "Using default fan-out for dynamic dimension",
            job=job_id,
            dimension=name,
            size=self.default_fanout,
        )
        provider_key = None
        if reference is not None and reference.key in self._providers:
            provider_key = reference.key
        return DimensionSize(
            name, self.default_fanout, SizeSource.DEFAULT, provider_key
        )

    def _lookup_related_provider(
        self, job_id: str, reference: OutputReference | None
    ) -> OutputProvider | None:
        """Find a sized provider on the referenced job or on a dependency."""
        candidates: list[str] = []
        if reference is not None:
            candidates.append(reference.job_id)
        candidates.extend(
            dep for dep in self.graph.dependencies_of(job_id) if dep not in candidates
        )
        for candidate in candidates:
            for provider in self._providers.values():
                if provider.provider_task_id == candidate and provider.sized:
                    return provider
        return None
