# src/taskpilot/tasks/task_ids.py

"""
Identifier allocation.

Ids are derived purely from what is in the store (the task ids/subtask indexes
plus the persisted high-water marks), so asking twice without inserting gives
the same answer and the allocator can never drift from the document.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from ..errors import IdentifierError
from .task_models import Task

if TYPE_CHECKING:
    from .task_store import TaskStore

_SUBTASK_ID_RE = re.compile(r"^\s*(\d+)\.(\d+)\s*$")
_TASK_ID_RE = re.compile(r"^\s*(\d+)\s*$")


def next_task_id(store: TaskStore) -> int:
    highest = max((t.id for t in store.tasks), default=0)
    return max(highest, store.last_task_id) + 1


def next_subtask_index(task: Task) -> int:
    highest = max((s.index for s in task.subtasks), default=0)
    return max(highest, task.last_subtask_index) + 1


def next_subtask_id(task: Task) -> str:
    return format_subtask_id(task.id, next_subtask_index(task))


def format_subtask_id(parent_id: int, index: int) -> str:
    return f"{int(parent_id)}.{int(index)}"


def is_subtask_id(raw: str | int) -> bool:
    return bool(_SUBTASK_ID_RE.match(str(raw)))


def parse_task_id(raw: str | int) -> int:
    m = _TASK_ID_RE.match(str(raw))
    if not m or int(m.group(1)) < 1:
        raise IdentifierError(f"not a task id: {raw!r}")
    return int(m.group(1))


def parse_subtask_id(raw: str) -> tuple[int, int]:
    """'5.2' -> (5, 2). Raises IdentifierError."""
    m = _SUBTASK_ID_RE.match(str(raw))
    if not m or int(m.group(1)) < 1 or int(m.group(2)) < 1:
        raise IdentifierError(f"not a subtask id: {raw!r}")
    return int(m.group(1)), int(m.group(2))
