"""Runtime settings for wcv."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from wcv.exceptions import ConfigError
from wcv.workflow.constants import DEFAULT_MAX_CONCURRENCY, DEFAULT_WORKFLOW_PATH

# Input names as exposed to workflow authors
_FIELD_LABELS = {
    "max_concurrency": "max-concurrency",
    "INPUT_MAX_CONCURRENCY": "max-concurrency",
    "workflow_path": "workflow-path",
    "INPUT_WORKFLOW_PATH": "workflow-path",
    "fail_on_error": "fail-on-error",
    "INPUT_FAIL_ON_ERROR": "fail-on-error",
}


class ValidatorSettings(BaseSettings):
    """Settings for a validation run.

    Environment variables:
        INPUT_MAX_CONCURRENCY: Maximum allowed concurrency per workflow
        INPUT_WORKFLOW_PATH: Workflow directory, relative to the workspace
        INPUT_FAIL_ON_ERROR: Exit non-zero when a workflow exceeds the ceiling
        GITHUB_WORKSPACE: Workspace root (defaults to the working directory)
        GITHUB_OUTPUT: File receiving step outputs
        GITHUB_ACTIONS: Render log lines as workflow commands
    """

    max_concurrency: int = Field(
        default=DEFAULT_MAX_CONCURRENCY,
        gt=0,
        validation_alias="INPUT_MAX_CONCURRENCY",
        description="Maximum allowed concurrency per workflow",
    )
    workflow_path: str = Field(
        default=DEFAULT_WORKFLOW_PATH,
        validation_alias="INPUT_WORKFLOW_PATH",
        description="Directory searched for workflow files",
    )
    fail_on_error: bool = Field(
        default=True,
        validation_alias="INPUT_FAIL_ON_ERROR",
        description="Whether a failed validation exits non-zero",
    )
    workspace: Path = Field(
        default_factory=Path.cwd,
        validation_alias="GITHUB_WORKSPACE",
        description="Workspace root",
    )
    output_file: Path | None = Field(
        default=None,
        validation_alias="GITHUB_OUTPUT",
        description="File receiving structured outputs",
    )
    annotations: bool = Field(
        default=False,
        validation_alias="GITHUB_ACTIONS",
        description="Render issues as workflow commands",
    )

    model_config = {
        "env_prefix": "",
        "env_ignore_empty": True,
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def workflow_dir(self) -> Path:
        """Directory searched for workflow files."""
        return self.workspace / self.workflow_path

    @classmethod
    def load(cls, **overrides: Any) -> ValidatorSettings:
        """Read settings from the environment, applying explicit overrides.

        Args:
            **overrides: Field values taking precedence over the environment;
                None values are ignored.

        Returns:
            The settings.

        Raises:
            ConfigError: If a value is invalid.
        """
        # Keyed by alias so explicit values take precedence over the environment
        values: dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            alias = cls.model_fields[key].validation_alias
            values[alias if isinstance(alias, str) else key] = value
        try:
            return cls(**values)
        except ValidationError as e:
            error = e.errors()[0]
            loc = str(error["loc"][0]) if error["loc"] else ""
            field = _FIELD_LABELS.get(loc, loc)
            if field == "max-concurrency":
                msg = "max-concurrency must be a positive number"
            else:
                msg = f"Invalid value for {field}: {error['msg']}"
            raise ConfigError(msg, field=field) from e
