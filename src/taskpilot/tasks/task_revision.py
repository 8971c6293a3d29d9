# src/taskpilot/tasks/task_revision.py

"""
Revision merge: integrity-checked replacement of the future segment.

The task list is split at `from_id`:
- past   = tasks with id <  from_id (kept as-is, never touched)
- future = tasks with id >= from_id (replaced wholesale by the proposal)

The proposal is validated in full before anything changes. Every violation is
collected so a generated proposal can be fixed in one pass. Statuses and
subtasks are carried over for ids the proposal keeps; new ids start as TODO.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..errors import IntegrityError
from .task_graph import dependency_violations, graph_of
from .task_ids import parse_task_id
from .task_models import ProposedTask, Task, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RevisionOutcome:
    from_id: int
    kept: list[int] = field(default_factory=list)
    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)


def revision_violations(store: TaskStore, from_id: int, proposed: Sequence[ProposedTask]) -> list[str]:
    """Every reason the proposal cannot be spliced in (empty list = OK)."""
    past, future = store.split(from_id)
    future_ids = {t.id for t in future}
    problems: list[str] = []

    ids: list[int] = []
    for pos, p in enumerate(proposed, start=1):
        if p.id is None:
            problems.append(f"proposed task #{pos} ({p.title!r}) has no id")
            continue
        if p.id < from_id:
            problems.append(
                f"proposed task {p.id} is below the revision start {from_id} (past tasks cannot be replaced)"
            )
        elif p.id not in future_ids and p.id <= store.last_task_id:
            problems.append(f"proposed task {p.id} reuses the id of a task that no longer exists")
        ids.append(p.id)

    for tid, n in sorted(Counter(ids).items()):
        if n > 1:
            problems.append(f"task id {tid} appears {n} times in the proposal")

    proposed_ids = set(ids)
    for t in past:
        for dep in t.depends_on:
            if dep >= from_id and dep not in proposed_ids:
                problems.append(f"task {t.id} depends on task {dep}, which the revision removes")

    graph = graph_of(past)
    for p in proposed:
        if p.id is not None and p.id >= from_id:
            graph[p.id] = list(p.depends_on)
    problems.extend(dependency_violations(graph, only=sorted(i for i in proposed_ids if i >= from_id)))

    return problems


def build_future(store: TaskStore, from_id: int, proposed: Sequence[ProposedTask]) -> list[Task]:
    """Turn a validated proposal into Task records (status/subtasks carried over by id)."""
    _, future = store.split(from_id)
    current = {t.id: t for t in future}

    out: list[Task] = []
    for p in proposed:
        assert p.id is not None
        existing = current.get(p.id)
        out.append(
            Task(
                id=p.id,
                title=p.title,
                description=p.description,
                priority=p.priority,
                status=existing.status if existing else TaskStatus.TODO,
                depends_on=[int(d) for d in p.depends_on],
                subtasks=copy.deepcopy(existing.subtasks) if existing else [],
                last_subtask_index=existing.last_subtask_index if existing else 0,
            )
        )
    out.sort(key=lambda t: t.id)
    return out


def merge_revision(store: TaskStore, from_id: int | str, proposed: Sequence[ProposedTask]) -> RevisionOutcome:
    """
    Validate `proposed` against the past segment and splice it in.

    The split is by id only, so `from_id` need not be an existing task (an
    empty future appends after the last task). Raises IdentifierError when
    from_id is not a task id at all, IntegrityError listing every violation
    otherwise; the store is untouched on failure.
    """
    start = parse_task_id(from_id)

    problems = revision_violations(store, start, proposed)
    if problems:
        logger.warning("Revision from %s rejected: %s problem(s)", start, len(problems))
        raise IntegrityError(problems, summary=f"revision from task {start} rejected")

    _, future = store.split(start)
    before = {t.id for t in future}
    replacement = build_future(store, start, proposed)
    after = {t.id for t in replacement}

    store.replace_future(start, replacement)

    outcome = RevisionOutcome(
        from_id=start,
        kept=sorted(before & after),
        added=sorted(after - before),
        removed=sorted(before - after),
    )
    logger.info(
        "Revision from %s merged kept=%s added=%s removed=%s",
        start,
        outcome.kept,
        outcome.added,
        outcome.removed,
    )
    return outcome
