"""Workflow and job definition models."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from wcv.exceptions import WorkflowParseError

logger = structlog.get_logger()


def _string_keys(value: Any) -> Any:
    # YAML 1.1 reads keys such as `on` as booleans
    if isinstance(value, dict):
        return {str(key): item for key, item in value.items()}
    return value


def _coerce_concurrency(v: Any) -> Any:
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, dict):
        return _string_keys(v)
    return str(v)


class StrategyDefinition(BaseModel):
    """Execution strategy of a job.

    Attributes:
        matrix: Mapping of dimension name to values, or a single expression
            string that expands to the whole matrix at runtime.
        max_parallel: Optional cap on simultaneously running matrix instances.
    """

    matrix: dict[str, Any] | str | None = None
    max_parallel: int | str | None = Field(default=None, alias="max-parallel")

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator("matrix", mode="before")
    @classmethod
    def normalize_matrix(cls, v: Any) -> Any:
        """Treat non-mapping, non-string matrices as absent."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, dict):
            return _string_keys(v)
        return None

    @field_validator("max_parallel", mode="before")
    @classmethod
    def normalize_max_parallel(cls, v: Any) -> Any:
        """Treat caps that are neither numbers nor expressions as absent."""
        if isinstance(v, bool):
            return None
        return v if isinstance(v, int | str) else None


class JobDefinition(BaseModel):
    """Definition of a single workflow job.

    Only the fields needed to build the dependency graph and estimate
    fan-out are modelled; everything else is kept as extra data.

    Attributes:
        needs: A single job id or a list of job ids this job waits for.
        strategy: Matrix strategy of the job.
        outputs: Declared job outputs (output key -> expression).
        steps: Raw step mappings.
        concurrency: Job-level concurrency group (string or mapping).
    """

    needs: str | list[str] | None = None
    strategy: StrategyDefinition | None = None
    outputs: dict[str, Any] = Field(default_factory=dict)
    steps: list[Any] = Field(default_factory=list)
    concurrency: str | dict[str, Any] | None = None

    model_config = {"extra": "allow"}

    @field_validator("needs", mode="before")
    @classmethod
    def coerce_needs(cls, v: Any) -> Any:
        """Stringify scalar job ids so YAML numbers and booleans still link."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, list):
            return [str(item) for item in v if item is not None]
        return str(v)

    @field_validator("strategy", mode="before")
    @classmethod
    def coerce_strategy(cls, v: Any) -> Any:
        return _string_keys(v) if isinstance(v, dict) else None

    @field_validator("outputs", mode="before")
    @classmethod
    def coerce_outputs(cls, v: Any) -> Any:
        """Treat a missing or malformed outputs block as empty."""
        return _string_keys(v) if isinstance(v, dict) else {}

    @field_validator("steps", mode="before")
    @classmethod
    def coerce_steps(cls, v: Any) -> Any:
        """Treat a missing or malformed steps block as empty."""
        return v if isinstance(v, list) else []

    @field_validator("concurrency", mode="before")
    @classmethod
    def coerce_concurrency(cls, v: Any) -> Any:
        return _coerce_concurrency(v)

    @property
    def matrix(self) -> dict[str, Any] | str | None:
        """The job's matrix, if any."""
        if self.strategy is None:
            return None
        return self.strategy.matrix

    def run_scripts(self) -> list[tuple[str | None, str]]:
        """Return (step id, run text) for every step with a shell command."""
        scripts: list[tuple[str | None, str]] = []
        for step in self.steps:
            if not isinstance(step, dict):
                continue
            run = step.get("run")
            if isinstance(run, str):
                step_id = step.get("id")
                scripts.append((str(step_id) if step_id is not None else None, run))
        return scripts


class WorkflowDefinition(BaseModel):
    """A parsed workflow file.

    Attributes:
        name: Workflow display name.
        jobs: Job id -> job definition, in declaration order.
        concurrency: Workflow-level concurrency group (string or mapping).
    """

    name: str | None = None
    jobs: dict[str, JobDefinition] = Field(default_factory=dict)
    concurrency: str | dict[str, Any] | None = None

    model_config = {"extra": "allow"}

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> Any:
        return None if v is None else str(v)

    @field_validator("concurrency", mode="before")
    @classmethod
    def coerce_concurrency(cls, v: Any) -> Any:
        return _coerce_concurrency(v)

    @field_validator("jobs", mode="before")
    @classmethod
    def validate_jobs(cls, v: Any) -> Any:
        """Require a mapping of jobs; empty job bodies become empty jobs."""
        if v is None:
            return {}
        if not isinstance(v, dict):
            msg = "'jobs' must be a mapping of job id to job definition"
            raise ValueError(msg)
        return {
            str(key): ({} if job is None else _string_keys(job))
            for key, job in v.items()
        }

    @property
    def has_jobs(self) -> bool:
        """Whether the workflow declares any job."""
        return bool(self.jobs)

    @classmethod
    def from_mapping(
        cls, data: dict[str, Any], *, path: Path | None = None
    ) -> WorkflowDefinition:
        """Build a workflow from an already parsed tree.

        Raises:
            WorkflowParseError: If the tree does not describe a workflow.
        """
        try:
            return cls.model_validate(_string_keys(data))
        except ValidationError as e:
            msg = f"Invalid workflow structure: {e}"
            raise WorkflowParseError(msg, path=path) from e

    @classmethod
    def from_yaml(
        cls, yaml_content: str, *, path: Path | None = None
    ) -> WorkflowDefinition:
        """Parse a workflow from YAML content.

        Args:
            yaml_content: YAML string to parse.
            path: Source path, for error reporting.

        Returns:
            Parsed WorkflowDefinition instance.

        Raises:
            WorkflowParseError: If the YAML is invalid or not a mapping.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            msg = f"Invalid YAML: {e}"
            raise WorkflowParseError(msg, path=path) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            msg = "Workflow YAML must be a mapping"
            raise WorkflowParseError(msg, path=path)

        return cls.from_mapping(data, path=path)

    @classmethod
    def load(cls, path: Path) -> WorkflowDefinition:
        """Load a workflow from a YAML file.

        Raises:
            WorkflowParseError: If the file can't be read or parsed.
        """
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Cannot read workflow file: {e}"
            raise WorkflowParseError(msg, path=path) from e

        workflow = cls.from_yaml(content, path=path)
        logger.debug("Loaded workflow", path=str(path), jobs=len(workflow.jobs))
        return workflow
