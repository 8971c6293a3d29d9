# src/taskpilot/tasks/task_graph.py

"""
Dependency resolution and status lifecycle.

Dependencies are edges task -> task. A task is satisfied when every task it
depends on is DONE. Dangling references are integrity faults, never silently
treated as satisfied.

Cycle detection is a depth-first walk that keeps an on-stack set (Tarjan's
strongly connected components), so it reports every task that sits on a cycle,
not just the first back edge it sees.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING

from ..errors import IntegrityError, LifecycleError
from .task_ids import is_subtask_id
from .task_models import Subtask, Task, TaskStatus

if TYPE_CHECKING:
    from .task_store import TaskStore

logger = logging.getLogger(__name__)

DependencyGraph = Mapping[int, Sequence[int | str]]


# ---- dependency resolver ----


def is_satisfied(task: Task, store: TaskStore) -> bool:
    """True iff every dependency resolves to a task whose status is DONE."""
    missing = [dep for dep in task.depends_on if store.find_task(dep) is None]
    if missing:
        raise IntegrityError(
            [f"task {task.id} depends on missing task {dep}" for dep in missing],
            summary=f"task {task.id} has dangling dependencies",
        )
    return all(store.get_task(dep).status == TaskStatus.DONE for dep in task.depends_on)


def unmet_dependencies(task: Task, store: TaskStore) -> list[int]:
    """Dependencies that are not DONE yet (missing ones included)."""
    out: list[int] = []
    for dep in task.depends_on:
        dep_task = store.find_task(dep)
        if dep_task is None or dep_task.status != TaskStatus.DONE:
            out.append(dep)
    return out


def graph_of(tasks: Sequence[Task]) -> dict[int, list[int | str]]:
    return {t.id: list(t.depends_on) for t in tasks}


def find_cycles(graph: DependencyGraph) -> list[list[int]]:
    """
    Return every group of task ids that depend on each other in a loop.

    Each group is sorted; groups are ordered by their smallest id. Edges to
    unknown ids or to non-integer references are ignored here (they are
    reported by dependency_violations instead).
    """
    index_of: dict[int, int] = {}
    lowlink: dict[int, int] = {}
    stack: list[int] = []
    on_stack: set[int] = set()
    cycles: list[list[int]] = []
    counter = 0

    def edges(node: int) -> list[int]:
        return [d for d in graph.get(node, ()) if isinstance(d, int) and d in graph]

    def enter(node: int) -> tuple[int, Iterator[int]]:
        nonlocal counter
        index_of[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)
        return node, iter(edges(node))

    def close(node: int) -> None:
        if lowlink[node] != index_of[node]:
            return
        component: list[int] = []
        while True:
            member = stack.pop()
            on_stack.discard(member)
            component.append(member)
            if member == node:
                break
        if len(component) > 1 or node in edges(node):
            cycles.append(sorted(component))

    # Explicit work stack instead of recursion: dependency chains can be
    # longer than the interpreter's recursion limit.
    for root in sorted(graph):
        if root in index_of:
            continue
        work = [enter(root)]
        while work:
            node, deps = work[-1]
            child = None
            for dep in deps:
                if dep not in index_of:
                    child = dep
                    break
                if dep in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[dep])
            if child is not None:
                work.append(enter(child))
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            close(node)

    cycles.sort(key=lambda c: c[0])
    return cycles


def has_cycle(store: TaskStore) -> bool:
    return bool(find_cycles(graph_of(store.tasks)))


def cyclic_task_ids(store: TaskStore) -> set[int]:
    return {tid for group in find_cycles(graph_of(store.tasks)) for tid in group}


def dependency_violations(graph: DependencyGraph, *, only: Sequence[int] | None = None) -> list[str]:
    """
    Check every edge of `graph` and return human-readable violations.

    `only` restricts edge checks to the given source tasks (cycles are always
    checked over the whole graph).
    """
    sources = sorted(graph) if only is None else list(only)
    problems: list[str] = []

    for tid in sources:
        for dep in graph.get(tid, ()):
            if isinstance(dep, str):
                if is_subtask_id(dep):
                    problems.append(f"task {tid} depends on subtask {dep.strip()} (only tasks can be dependencies)")
                else:
                    problems.append(f"task {tid} has a non-numeric dependency {dep!r}")
            elif dep == tid:
                problems.append(f"task {tid} depends on itself")
            elif dep not in graph:
                problems.append(f"task {tid} depends on missing task {dep}")

    for group in find_cycles(graph):
        if len(group) == 1:
            continue  # self-reference, already reported
        problems.append("dependency cycle between tasks " + ", ".join(str(t) for t in group))

    return problems


def ensure_dependencies_valid(graph: DependencyGraph, *, only: Sequence[int] | None = None) -> None:
    problems = dependency_violations(graph, only=only)
    if problems:
        raise IntegrityError(problems)


# ---- status lifecycle ----


def set_task_status(task: Task, new_status: TaskStatus) -> TaskStatus:
    """
    Apply a caller-directed status change; returns the previous status.

    The one structural rule: a task cannot become DONE while any of its
    subtasks is still open.
    """
    if new_status == TaskStatus.DONE:
        open_ids = task.open_subtask_ids()
        if open_ids:
            raise LifecycleError(
                f"task {task.id} cannot be marked done: open subtasks {', '.join(open_ids)}",
                subtask_ids=open_ids,
            )

    previous = task.status
    task.status = new_status
    if previous != new_status:
        logger.debug("Task %s: %s -> %s", task.id, previous.value, new_status.value)
    return previous


def set_subtask_status(subtask: Subtask, new_status: TaskStatus) -> TaskStatus:
    """Subtask statuses never propagate to the parent."""
    previous = subtask.status
    subtask.status = new_status
    if previous != new_status:
        logger.debug("Subtask %s: %s -> %s", subtask.id, previous.value, new_status.value)
    return previous
