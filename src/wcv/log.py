"""Logging configuration for wcv."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

# structlog level -> workflow command
_ANNOTATION_COMMANDS = {
    "critical": "error",
    "error": "error",
    "warning": "warning",
    "debug": "debug",
}


def escape_command_data(message: str) -> str:
    """Escape a message for use as workflow command data."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class GitHubAnnotationRenderer:
    """Renders error, warning and debug events as workflow commands.

    Other events are handed to the wrapped renderer unchanged, so regular
    progress output keeps its console formatting.
    """

    def __init__(self, fallback: Any) -> None:
        self._fallback = fallback

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> str:
        level = str(event_dict.get("level", method_name))
        command = _ANNOTATION_COMMANDS.get(level)
        if command is None:
            return self._fallback(logger, method_name, event_dict)

        message = str(event_dict.pop("event", ""))
        for key in ("level", "timestamp"):
            event_dict.pop(key, None)
        if event_dict:
            context = ", ".join(f"{key}={value}" for key, value in event_dict.items())
            message = f"{message} ({context})"
        return f"::{command}::{escape_command_data(message)}"


def configure_logging(*, annotations: bool = False, verbose: bool = False) -> None:
    """Configure structlog for CLI output.

    Args:
        annotations: Render issues as workflow commands (::error:: etc.).
        verbose: Emit debug events.
    """
    renderer: Any = structlog.dev.ConsoleRenderer()
    if annotations:
        renderer = GitHubAnnotationRenderer(renderer)

    # The runner hides ::debug:: lines unless step debugging is enabled
    min_level = logging.DEBUG if verbose or annotations else logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
