"""Custom exceptions for wcv."""

from pathlib import Path


class WcvError(Exception):
    """Base exception for all wcv errors."""

    pass


class ConfigError(WcvError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: str = "",
    ) -> None:
        super().__init__(message)
        self.field = field


class WorkflowParseError(WcvError):
    """Raised when a workflow file cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.path = path
