"""Analysis constants."""

from __future__ import annotations

# Ceiling applied per workflow file when none is configured
DEFAULT_MAX_CONCURRENCY: int = 10

# Directory searched for workflow definitions, relative to the workspace
DEFAULT_WORKFLOW_PATH: str = ".github/workflows"

# Extensions of workflow definition files
WORKFLOW_EXTENSIONS: tuple[str, ...] = (".yml", ".yaml")

# Assumed size of a dynamic matrix dimension that cannot be estimated
DEFAULT_DYNAMIC_FANOUT: int = 3

# Matrix keys that are not dimensions
MATRIX_RESERVED_KEYS: frozenset[str] = frozenset({"include", "exclude"})
