"""Structured step outputs for the calling workflow."""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any

import structlog
import typer

logger = structlog.get_logger()


def serialize_output(value: Any) -> str:
    """Render an output value: booleans lowercase, composites as JSON."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str | int):
        return str(value)
    return json.dumps(value)


class OutputWriter:
    """Writes key/value outputs using the GITHUB_OUTPUT file protocol.

    Each value is appended as a heredoc block with a random delimiter. When
    no output file is configured, the legacy `::set-output` command is
    printed instead.

    Example:
        >>> writer = OutputWriter(Path("/tmp/github-output"))
        >>> writer.set("validation_passed", True)
    """

    def __init__(self, output_file: Path | None = None) -> None:
        """Initialize the writer.

        Args:
            output_file: File named by GITHUB_OUTPUT, if any.
        """
        self.output_file = output_file

    def set(self, name: str, value: Any) -> None:
        """Write one output.

        Args:
            name: Output name.
            value: Output value; non-strings are serialized.
        """
        text = serialize_output(value)
        if self.output_file is None:
            typer.echo(f"::set-output name={name}::{text}")
            return

        delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
        with self.output_file.open("a", encoding="utf-8") as f:
            f.write(f"{name}<<{delimiter}\n{text}\n{delimiter}\n")
        logger.debug("Wrote output", name=name, path=str(self.output_file))

    def set_all(self, outputs: dict[str, Any]) -> None:
        """Write several outputs, in order."""
        for name, value in outputs.items():
            self.set(name, value)


def read_outputs(path: Path) -> dict[str, str]:
    """Parse a GITHUB_OUTPUT file written by `OutputWriter`.

    Later values for the same name replace earlier ones.

    Args:
        path: The output file.

    Returns:
        Output name -> raw value.
    """
    outputs: dict[str, str] = {}
    lines = iter(path.read_text(encoding="utf-8").splitlines())
    for line in lines:
        if "<<" not in line:
            continue
        name, delimiter = line.split("<<", 1)
        value_lines: list[str] = []
        for value_line in lines:
            if value_line == delimiter:
                break
            value_lines.append(value_line)
        outputs[name] = "\n".join(value_lines)
    return outputs
