"""Concurrency-group declarations and the exclusivity they imply."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

Scope = Literal["workflow", "job"]


@dataclass(frozen=True)
class ConcurrencySetting:
    """A `concurrency` declaration found in a workflow.

    Attributes:
        scope: Where it was declared ("workflow" or "job").
        group: Group expression, as written.
        cancel_in_progress: Whether a newer run cancels the running one.
        job: Declaring job id (job scope only).
        exclusive_key: Key shared by everything that may only run one at a
            time, or None when the group does not serialize job instances.
    """

    scope: Scope
    group: str
    cancel_in_progress: bool = False
    job: str | None = None
    exclusive_key: str | None = None

    @property
    def counted(self) -> bool:
        """Whether the declaration changes the measured concurrency."""
        return self.exclusive_key is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "level": self.scope,
            "group": self.group,
            "type": "cancel-in-progress" if self.cancel_in_progress else "standard",
            "counted": self.counted,
        }
        if self.job is not None:
            data["job"] = self.job
        return data


def _group_of(value: str | dict[str, Any] | None) -> tuple[str | None, bool]:
    if value is None:
        return None, False
    if isinstance(value, str):
        return value, False
    group = value.get("group")
    cancel = value.get("cancel-in-progress") is True
    return (str(group) if group is not None else None), cancel


def parse_concurrency(
    value: str | dict[str, Any] | None,
    *,
    scope: Scope,
    job_id: str | None = None,
) -> ConcurrencySetting | None:
    """Interpret a `concurrency` field.

    A job-level group that does not reference `matrix.` is the same for all
    of the job's matrix instances, so they run one at a time. A group that
    references `github.job` is specific to the declaring job even when the
    text is shared with other jobs.

    Args:
        value: The raw field (string or mapping with `group`).
        scope: Declaration scope.
        job_id: Declaring job, for job scope.

    Returns:
        The parsed setting, or None if no group is declared.
    """
    group, cancel = _group_of(value)
    if not group:
        return None

    exclusive_key = None
    if scope == "job" and "matrix." not in group:
        exclusive_key = f"{group}@{job_id}" if "github.job" in group else group

    return ConcurrencySetting(
        scope=scope,
        group=group,
        cancel_in_progress=cancel,
        job=job_id,
        exclusive_key=exclusive_key,
    )
