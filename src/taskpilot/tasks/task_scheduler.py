# src/taskpilot/tasks/task_scheduler.py

"""
Next-task selection.

A pure query over the current store snapshot:
- keep tasks that are TODO, not part of a dependency cycle, and whose
  dependencies are all DONE,
- order by priority (high > medium > low), then by id ascending,
- return the first one.

Ids are unique, so the ordering is total and the answer is reproducible.
"""

from __future__ import annotations

import logging

from .task_graph import cyclic_task_ids, is_satisfied
from .task_models import Task, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)


def selection_key(task: Task) -> tuple[int, int]:
    return (-task.priority.rank, task.id)


def actionable_tasks(store: TaskStore) -> list[Task]:
    """All selectable tasks, best first."""
    cyclic = cyclic_task_ids(store)
    if cyclic:
        logger.warning("Tasks on a dependency cycle are never selected: %s", sorted(cyclic))

    candidates = [
        t
        for t in store.tasks
        if t.status == TaskStatus.TODO and t.id not in cyclic and is_satisfied(t, store)
    ]
    candidates.sort(key=selection_key)
    return candidates


def select_next(store: TaskStore) -> Task | None:
    candidates = actionable_tasks(store)
    if not candidates:
        logger.debug("No actionable task among %s", store.count_tasks())
        return None
    task = candidates[0]
    logger.debug("Next task id=%s priority=%s (of %s candidates)", task.id, task.priority.value, len(candidates))
    return task
