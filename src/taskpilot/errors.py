# src/taskpilot/errors.py

"""
Error taxonomy.

Every command either completes or raises one of these before touching the
persisted document. The CLI maps them to a message on stderr and `exit_code`.
"""

from __future__ import annotations

from collections.abc import Iterable


class TaskPilotError(Exception):
    """Base class for all expected, user-reportable failures."""

    exit_code = 1


class StructuralError(TaskPilotError):
    """Persisted document is missing or malformed."""

    exit_code = 7


class IdentifierError(TaskPilotError):
    """Reference to a task/subtask id that does not exist (or cannot be parsed)."""

    exit_code = 3


class IntegrityError(TaskPilotError):
    """
    Dependency graph violation: cycle, dangling reference, self-reference,
    reference to a subtask.

    Carries every violation found, not just the first one.
    """

    exit_code = 4

    def __init__(self, violations: Iterable[str], *, summary: str = "dependency integrity check failed") -> None:
        self.violations: list[str] = list(violations)
        self.summary = summary
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.violations:
            return self.summary
        lines = [f"{self.summary} ({len(self.violations)} problem(s)):"]
        lines.extend(f"  - {v}" for v in self.violations)
        return "\n".join(lines)


class LifecycleError(TaskPilotError):
    """Status transition refused (a task cannot be done while subtasks are open)."""

    exit_code = 5

    def __init__(self, message: str, *, subtask_ids: Iterable[str] = ()) -> None:
        self.subtask_ids: list[str] = list(subtask_ids)
        super().__init__(message)


class CollaboratorError(TaskPilotError):
    """Text-generation service failed or returned something unusable."""

    exit_code = 6
