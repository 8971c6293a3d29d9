# src/taskpilot/tasks/task_store.py

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from ..errors import IdentifierError, StructuralError, TaskPilotError
from .task_graph import ensure_dependencies_valid, graph_of, set_subtask_status, set_task_status
from .task_ids import (
    format_subtask_id,
    is_subtask_id,
    next_subtask_index,
    next_task_id,
    parse_subtask_id,
    parse_task_id,
)
from .task_models import Subtask, Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


class TaskStore:
    """
    JSON-document task store.

    The store is the single owner of Task/Subtask records. Every public
    mutation validates first, then changes memory, then persists (when the
    store is bound to a path). A store created without a path is purely
    in-memory, which is what unit tests use.

    Persistence:
    - the whole document is rewritten on each commit
    - writes go to "<file>.tmp" and are moved into place with os.replace
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        tasks: Iterable[Task] = (),
        last_task_id: int = 0,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._tasks: list[Task] = sorted(tasks, key=lambda t: t.id)
        self._last_task_id = max(int(last_task_id), max((t.id for t in self._tasks), default=0))

    # ---- construction ----

    @classmethod
    def create(cls, path: str | Path, *, force: bool = False) -> TaskStore:
        """Create an empty document at `path` (the `init` command)."""
        p = Path(path)
        if p.exists() and not force:
            raise TaskPilotError(f"{p} already exists (use --force to overwrite)")
        store = cls(p)
        store.save()
        logger.info("TaskStore created file=%s", p)
        return store

    @classmethod
    def open(cls, path: str | Path) -> TaskStore:
        p = Path(path)
        if not p.exists():
            raise StructuralError(f"task file not found: {p} (run 'taskpilot init' first)")
        try:
            raw = p.read_text("utf-8")
        except OSError as e:
            raise StructuralError(f"cannot read task file {p}: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StructuralError(f"task file {p} is not valid JSON: {e}") from e

        store = cls.from_document(data, path=p)
        logger.info("TaskStore ready file=%s total=%s", p, store.count_tasks())
        return store

    @classmethod
    def from_document(cls, data: Any, *, path: str | Path | None = None) -> TaskStore:
        if not isinstance(data, dict):
            raise StructuralError("task document must be a JSON object")
        raw_tasks = data.get("tasks")
        if not isinstance(raw_tasks, list):
            raise StructuralError("task document must contain a 'tasks' array")

        tasks = [_record_to_task(rec, pos) for pos, rec in enumerate(raw_tasks)]

        seen: set[int] = set()
        for t in tasks:
            if t.id in seen:
                raise StructuralError(f"duplicate task id {t.id} in task document")
            seen.add(t.id)

        last_task_id = data.get("lastTaskId", 0)
        if not _is_int(last_task_id) or last_task_id < 0:
            raise StructuralError("'lastTaskId' must be a non-negative integer")

        return cls(path, tasks=tasks, last_task_id=last_task_id)

    def to_document(self) -> dict[str, Any]:
        return {
            "version": DOCUMENT_VERSION,
            "lastTaskId": self.last_task_id,
            "tasks": [_task_to_record(t) for t in self._tasks],
        }

    def save(self) -> None:
        if self._path is None:
            return
        path = self._path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_text(json.dumps(self.to_document(), ensure_ascii=False, indent=2) + "\n", "utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise TaskPilotError(f"cannot write task file {path}: {e}") from e
        logger.debug("TaskStore saved file=%s total=%s", path, len(self._tasks))

    def _commit(self) -> None:
        # High-water mark only ever grows, so removed ids are never handed out again.
        self._last_task_id = max(self._last_task_id, max((t.id for t in self._tasks), default=0))
        self.save()

    # ---- queries ----

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    @property
    def last_task_id(self) -> int:
        return self._last_task_id

    def count_tasks(self) -> int:
        return len(self._tasks)

    def find_task(self, task_id: int) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def get_task(self, task_id: int | str) -> Task:
        tid = parse_task_id(task_id)
        task = self.find_task(tid)
        if task is None:
            raise IdentifierError(f"task {tid} does not exist")
        return task

    def get_subtask(self, subtask_id: str) -> tuple[Task, Subtask]:
        parent_id, index = parse_subtask_id(subtask_id)
        parent = self.get_task(parent_id)
        sid = format_subtask_id(parent_id, index)
        sub = parent.find_subtask(sid)
        if sub is None:
            raise IdentifierError(f"subtask {sid} does not exist")
        return parent, sub

    def list_tasks(self, *, status: TaskStatus | None = None) -> list[Task]:
        if status is None:
            return list(self._tasks)
        return [t for t in self._tasks if t.status == status]

    def split(self, from_id: int) -> tuple[list[Task], list[Task]]:
        """(past, future): ids below `from_id` and ids from `from_id` on."""
        past = [t for t in self._tasks if t.id < from_id]
        future = [t for t in self._tasks if t.id >= from_id]
        return past, future

    # ---- task mutations ----

    def add_task(
        self,
        *,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.MEDIUM,
        depends_on: Sequence[int] = (),
    ) -> Task:
        task = Task(
            id=next_task_id(self),
            title=_require_title(title),
            description=(description or "").strip(),
            priority=priority,
            depends_on=_dedupe(depends_on),
        )
        self.insert_tasks([task])
        return task

    def insert_tasks(self, new_tasks: Sequence[Task]) -> None:
        """Insert fully-built tasks as one all-or-nothing change."""
        if not new_tasks:
            return
        new_ids = [t.id for t in new_tasks]
        clashes = sorted({i for i in new_ids if i <= self._last_task_id or new_ids.count(i) > 1})
        if clashes:
            raise IdentifierError("task ids already used: " + ", ".join(str(i) for i in clashes))

        graph = graph_of([*self._tasks, *new_tasks])
        ensure_dependencies_valid(graph, only=[t.id for t in new_tasks])

        self._tasks.extend(new_tasks)
        self._tasks.sort(key=lambda t: t.id)
        self._commit()
        for t in new_tasks:
            logger.info("Task added id=%s priority=%s deps=%s", t.id, t.priority.value, t.depends_on)

    def update_task(
        self,
        task_id: int | str,
        *,
        title: str | None = None,
        description: str | None = None,
        priority: TaskPriority | None = None,
        depends_on: Sequence[int] | None = None,
    ) -> Task:
        task = self.get_task(task_id)

        new_title = _require_title(title) if title is not None else None
        new_deps = _dedupe(depends_on) if depends_on is not None else None
        if new_deps is not None:
            graph = graph_of(self._tasks)
            graph[task.id] = list(new_deps)
            ensure_dependencies_valid(graph, only=[task.id])

        if new_title is not None:
            task.title = new_title
        if description is not None:
            task.description = description.strip()
        if priority is not None:
            task.priority = priority
        if new_deps is not None:
            task.depends_on = new_deps

        self._commit()
        logger.info("Task updated id=%s", task.id)
        return task

    def remove_task(self, task_id: int | str) -> list[int]:
        """
        Remove a task (and its subtasks).

        References to it are stripped from every other task's dependency list;
        returns the ids of the tasks that lost a dependency.
        """
        task = self.get_task(task_id)
        self._tasks.remove(task)

        stripped: list[int] = []
        for other in self._tasks:
            if task.id in other.depends_on:
                other.depends_on = [d for d in other.depends_on if d != task.id]
                stripped.append(other.id)

        self._commit()
        logger.info("Task removed id=%s subtasks=%s stripped_from=%s", task.id, len(task.subtasks), stripped)
        return stripped

    def set_status(self, raw_id: int | str, new_status: TaskStatus) -> TaskStatus:
        """Set status of a task ("5") or subtask ("5.2"); returns the previous status."""
        if is_subtask_id(raw_id):
            _, sub = self.get_subtask(str(raw_id))
            previous = set_subtask_status(sub, new_status)
        else:
            previous = set_task_status(self.get_task(raw_id), new_status)
        self._commit()
        return previous

    def replace_future(self, from_id: int, replacement: Sequence[Task]) -> None:
        """
        Swap every task with id >= from_id for `replacement`.

        No validation happens here; callers go through task_revision.merge_revision.
        """
        past = [t for t in self._tasks if t.id < from_id]
        self._tasks = sorted([*past, *replacement], key=lambda t: t.id)
        self._commit()

    # ---- subtask mutations ----

    def add_subtask(self, task_id: int | str, title: str) -> Subtask:
        return self.add_subtasks(task_id, [title])[0]

    def add_subtasks(self, task_id: int | str, titles: Sequence[str]) -> list[Subtask]:
        task = self.get_task(task_id)
        clean = [_require_title(t) for t in titles]

        added: list[Subtask] = []
        for title in clean:
            index = next_subtask_index(task)
            sub = Subtask(id=format_subtask_id(task.id, index), title=title)
            task.subtasks.append(sub)
            task.last_subtask_index = index
            added.append(sub)

        self._commit()
        logger.info("Subtasks added task_id=%s ids=%s", task.id, [s.id for s in added])
        return added

    def remove_subtask(self, subtask_id: str) -> Subtask:
        parent, sub = self.get_subtask(subtask_id)
        parent.subtasks.remove(sub)
        self._commit()
        logger.info("Subtask removed id=%s", sub.id)
        return sub


# ---- document (de)serialization ----


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _dedupe(ids: Iterable[int]) -> list[int]:
    out: list[int] = []
    for i in ids:
        if i not in out:
            out.append(int(i))
    return out


def _require_title(title: str | None) -> str:
    t = (title or "").strip()
    if not t:
        raise TaskPilotError("title is required")
    return t


def _task_to_record(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "status": task.status.value,
        "dependsOn": list(task.depends_on),
        "lastSubtaskIndex": task.last_subtask_index,
        "subtasks": [{"id": s.id, "title": s.title, "status": s.status.value} for s in task.subtasks],
    }


def _record_to_task(rec: Any, pos: int) -> Task:
    where = f"tasks[{pos}]"
    if not isinstance(rec, dict):
        raise StructuralError(f"{where} must be an object")

    tid = rec.get("id")
    if not _is_int(tid) or tid < 1:
        raise StructuralError(f"{where}.id must be a positive integer")
    where = f"task {tid}"

    title = rec.get("title")
    if not isinstance(title, str) or not title.strip():
        raise StructuralError(f"{where}: title must be a non-empty string")

    description = rec.get("description", "")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise StructuralError(f"{where}: description must be a string")

    try:
        priority = TaskPriority(rec.get("priority", "medium"))
        status = TaskStatus(rec.get("status", "todo"))
    except ValueError as e:
        raise StructuralError(f"{where}: {e}") from e

    deps = rec.get("dependsOn", [])
    if not isinstance(deps, list) or not all(_is_int(d) for d in deps):
        raise StructuralError(f"{where}: dependsOn must be an array of task ids")

    last_index = rec.get("lastSubtaskIndex", 0)
    if not _is_int(last_index) or last_index < 0:
        raise StructuralError(f"{where}: lastSubtaskIndex must be a non-negative integer")

    raw_subs = rec.get("subtasks", [])
    if not isinstance(raw_subs, list):
        raise StructuralError(f"{where}: subtasks must be an array")

    subtasks: list[Subtask] = []
    for sub in raw_subs:
        if not isinstance(sub, dict):
            raise StructuralError(f"{where}: every subtask must be an object")
        sid = sub.get("id")
        try:
            parent_id, _ = parse_subtask_id(str(sid))
        except IdentifierError:
            raise StructuralError(f"{where}: malformed subtask id {sid!r}") from None
        if parent_id != tid:
            raise StructuralError(f"{where}: subtask {sid} does not belong to this task")
        stitle = sub.get("title")
        if not isinstance(stitle, str) or not stitle.strip():
            raise StructuralError(f"{where}: subtask {sid} needs a non-empty title")
        try:
            sstatus = TaskStatus(sub.get("status", "todo"))
        except ValueError as e:
            raise StructuralError(f"{where}: subtask {sid}: {e}") from e
        subtasks.append(Subtask(id=str(sid).strip(), title=stitle, status=sstatus))

    if len({s.id for s in subtasks}) != len(subtasks):
        raise StructuralError(f"{where}: duplicate subtask ids")

    return Task(
        id=tid,
        title=title,
        description=description,
        priority=priority,
        status=status,
        depends_on=list(deps),
        subtasks=subtasks,
        last_subtask_index=last_index,
    )
