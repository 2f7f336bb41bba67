"""Pytest fixtures for wcv tests."""

from __future__ import annotations

import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest

ENV_VARS = (
    "INPUT_MAX_CONCURRENCY",
    "INPUT_WORKFLOW_PATH",
    "INPUT_FAIL_ON_ERROR",
    "GITHUB_WORKSPACE",
    "GITHUB_OUTPUT",
    "GITHUB_ACTIONS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the runner's own environment out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Create a workspace with an empty workflow directory."""
    workspace = tmp_path / "workspace"
    (workspace / ".github" / "workflows").mkdir(parents=True)
    return workspace


@pytest.fixture
def write_workflow(tmp_workspace: Path) -> Callable[[str, str], Path]:
    """Write a workflow file under the workspace's workflow directory.

    The content is dedented, so tests can use indented triple-quoted YAML.
    """

    def _write(name: str, content: str) -> Path:
        path = tmp_workspace / ".github" / "workflows" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return _write

