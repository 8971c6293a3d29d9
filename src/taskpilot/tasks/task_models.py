# src/taskpilot/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task/subtask lifecycle status.

    Notes:
    - "done" is the only state that satisfies dependents.
    - transitions are caller-directed; see task_graph.set_task_status for the one rule enforced.
    """

    TODO = "todo"
    IN_PROGRESS = "inprogress"
    DONE = "done"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: str | None) -> TaskStatus:
        """Parse a user/LLM supplied status, accepting common aliases. Raises ValueError."""
        s = str(raw or "").strip().lower()
        aliases = {
            "in-progress": "inprogress",
            "in_progress": "inprogress",
            "doing": "inprogress",
            "pending": "todo",
            "to-do": "todo",
            "complete": "done",
            "completed": "done",
        }
        s = aliases.get(s, s)
        try:
            return cls(s)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"invalid status {raw!r} (expected one of: {allowed})") from None


class TaskPriority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, raw: str | None) -> TaskPriority:
        s = str(raw or "").strip().lower()
        aliases = {"critical": "high", "urgent": "high", "normal": "medium"}
        s = aliases.get(s, s)
        try:
            return cls(s)
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"invalid priority {raw!r} (expected one of: {allowed})") from None


_PRIORITY_RANK = {
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}


@dataclass(slots=True)
class Subtask:
    id: str  # "<parent_id>.<index>"
    title: str
    status: TaskStatus = TaskStatus.TODO

    @property
    def index(self) -> int:
        return int(self.id.rsplit(".", 1)[1])


@dataclass(slots=True)
class Task:
    id: int
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    depends_on: list[int] = field(default_factory=list)
    subtasks: list[Subtask] = field(default_factory=list)

    # Highest subtask index ever handed out under this task (survives removals).
    last_subtask_index: int = 0

    def find_subtask(self, subtask_id: str) -> Subtask | None:
        for sub in self.subtasks:
            if sub.id == subtask_id:
                return sub
        return None

    def open_subtask_ids(self) -> list[str]:
        return [s.id for s in self.subtasks if s.status != TaskStatus.DONE]


@dataclass(slots=True, frozen=True)
class ProposedTask:
    """
    A task-shaped record coming from the text-generation service.

    Already shape-checked (non-empty title, known priority) but NOT trusted
    for referential integrity: `depends_on` may hold ints that point nowhere,
    or raw strings such as "3.1" that cannot be task ids at all.
    """

    title: str
    id: int | None = None
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    depends_on: tuple[int | str, ...] = ()
