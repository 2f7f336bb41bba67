"""wcv - static concurrency validator for GitHub Actions workflows."""

__version__ = "0.1.0"
