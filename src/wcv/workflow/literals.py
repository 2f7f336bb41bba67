"""Textual scanning of workflow expressions and shell snippets.

Everything here works on raw text: the analyzer never evaluates
expressions or runs commands, it only recognizes a few common shapes.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

# fromJSON(needs.<job>.outputs.<key>)
_FROM_JSON_EXACT = re.compile(
    r"fromJSON\s*\(\s*needs\.([\w-]+)\.outputs\.([\w-]+)\s*\)", re.IGNORECASE
)
# fromJSON ... needs.<job>.outputs.<key>, anything in between
_FROM_JSON_LOOSE = re.compile(
    r"fromJSON.*needs\.([\w-]+)\.outputs\.([\w-]+)", re.IGNORECASE | re.DOTALL
)
# bare needs.<job>.outputs.<key>
_NEEDS_OUTPUT = re.compile(r"needs\.([\w-]+)\.outputs\.([\w-]+)")

_REFERENCE_PATTERNS = (_FROM_JSON_EXACT, _FROM_JSON_LOOSE, _NEEDS_OUTPUT)

# steps.<id>.outputs.<key>
_STEP_OUTPUT = re.compile(r"steps\.([\w-]+)\.outputs\.([\w-]+)")

# <key>=[ on a line that writes to $GITHUB_OUTPUT
_OUTPUT_ASSIGNMENT = re.compile(r"(?:^|[\s'\"])([A-Za-z_][\w-]*)=(?=\[)")
# legacy ::set-output name=<key>::[
_SET_OUTPUT_COMMAND = re.compile(r"::set-output\s+name=([\w-]+)::(?=\[)")

_QUOTES = "'\""
_OPENERS = "[{("
_CLOSERS = "]})"


@dataclass(frozen=True)
class OutputReference:
    """A `needs.<job>.outputs.<key>` reference found in an expression."""

    job_id: str
    output_key: str

    @property
    def key(self) -> str:
        return f"{self.job_id}.{self.output_key}"


def is_expression(value: str) -> bool:
    """Whether a matrix value is a runtime expression rather than a literal."""
    return "${{" in value or "fromjson" in value.lower() or "needs." in value


def find_output_reference(expression: str) -> OutputReference | None:
    """Find the job output an expression reads from.

    Patterns are tried from most to least specific; the first match wins.
    """
    for pattern in _REFERENCE_PATTERNS:
        match = pattern.search(expression)
        if match:
            return OutputReference(job_id=match.group(1), output_key=match.group(2))
    return None


def find_step_reference(expression: str) -> tuple[str, str] | None:
    """Find a `steps.<id>.outputs.<key>` reference as (step id, key)."""
    match = _STEP_OUTPUT.search(expression)
    if match:
        return match.group(1), match.group(2)
    return None


def _literal_end(text: str) -> int | None:
    """Index of the bracket closing the literal that opens `text`."""
    depth = 0
    quote: str | None = None
    escaped = False
    for index, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
            continue
        if quote:
            if char == quote:
                quote = None
            continue
        if char in _QUOTES:
            quote = char
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
            if depth == 0:
                return index
    return None


def _split_top_level(body: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: str | None = None
    escaped = False
    for char in body:
        if escaped:
            escaped = False
            current.append(char)
            continue
        if char == "\\":
            escaped = True
            current.append(char)
            continue
        if quote:
            if char == quote:
                quote = None
        elif char in _QUOTES:
            quote = char
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts


def count_literal_elements(text: str) -> int | None:
    """Count the top-level elements of the bracketed literal starting `text`.

    JSON decoding is tried first (with shell-escaped quotes undone); when it
    fails the literal is split on top-level commas, ignoring commas inside
    quotes or nested brackets.

    Args:
        text: Text whose first character is `[`.

    Returns:
        The element count, or None if `text` does not open a closed literal.
    """
    if not text.startswith("["):
        return None
    end = _literal_end(text)
    if end is None:
        return None
    literal = text[: end + 1]

    for candidate in (literal, literal.replace('\\"', '"')):
        try:
            decoded = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(decoded, list):
            return len(decoded)

    elements = [
        part.strip()
        for part in _split_top_level(literal[1:-1])
        if part.strip() and part.strip() not in _QUOTES
    ]
    return len(elements)


def find_inline_literal_size(expression: str) -> int | None:
    """Size of the first bracketed literal embedded in an expression."""
    start = expression.find("[")
    while start != -1:
        size = count_literal_elements(expression[start:])
        if size is not None:
            return size
        start = expression.find("[", start + 1)
    return None


def scan_output_assignments(script: str) -> dict[str, int]:
    """Find array-valued outputs written by a shell script.

    Recognizes `<key>=[...]` assignments on lines that append to
    `$GITHUB_OUTPUT` (echo, printf, quoted or not) and the legacy
    `::set-output name=<key>::[...]` command.

    Args:
        script: The `run` text of a step.

    Returns:
        Output key -> element count; later assignments win.
    """
    sizes: dict[str, int] = {}
    for line in script.splitlines():
        matches: list[re.Match[str]] = []
        if "GITHUB_OUTPUT" in line:
            matches.extend(_OUTPUT_ASSIGNMENT.finditer(line))
        matches.extend(_SET_OUTPUT_COMMAND.finditer(line))
        for match in matches:
            size = count_literal_elements(line[match.end() :])
            if size is not None:
                sizes[match.group(1)] = size
    return sizes
