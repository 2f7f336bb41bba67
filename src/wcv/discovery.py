"""Workflow file discovery."""

from __future__ import annotations

from pathlib import Path

import structlog

from wcv.workflow.constants import WORKFLOW_EXTENSIONS

logger = structlog.get_logger()


def find_workflow_files(
    root: Path, extensions: tuple[str, ...] = WORKFLOW_EXTENSIONS
) -> list[Path]:
    """Find workflow definition files under a directory, recursively.

    Args:
        root: Directory to search.
        extensions: File suffixes to accept (case-insensitive).

    Returns:
        Matching files, sorted by path for a stable analysis order.
        Empty if `root` does not exist.
    """
    if not root.is_dir():
        logger.debug("Workflow directory not found", path=str(root))
        return []

    suffixes = {ext.lower() for ext in extensions}
    files = sorted(
        path
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in suffixes
    )
    logger.debug("Discovered workflow files", path=str(root), count=len(files))
    return files


def display_path(path: Path, workspace: Path) -> str:
    """Path relative to the workspace when possible, POSIX style."""
    try:
        return path.resolve().relative_to(workspace.resolve()).as_posix()
    except ValueError:
        return path.as_posix()
