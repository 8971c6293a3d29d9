# src/taskpilot/tasks/task_api.py

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from pathlib import Path

from ..core.state import AppState
from ..errors import IntegrityError, TaskPilotError
from ..llm.generator import TaskGenerator
from .task_ids import is_subtask_id, next_task_id, parse_task_id
from .task_models import ProposedTask, Subtask, Task
from .task_revision import RevisionOutcome, merge_revision
from .task_store import TaskStore

logger = logging.getLogger(__name__)


def make_generator(state: AppState) -> TaskGenerator:
    return TaskGenerator(state.llm, backup_dir=state.responses_dir)


def import_generated_tasks(store: TaskStore, proposals: Sequence[ProposedTask]) -> list[Task]:
    """
    Append LLM-generated tasks, translating list-local references into real ids.

    A proposal's local id is its own "id" when given, else its 1-based
    position in the list. The whole batch is rejected if any reference does
    not resolve inside the batch.
    """
    local_ids = [p.id if p.id is not None else pos for pos, p in enumerate(proposals, start=1)]
    problems: list[str] = []

    for local, n in sorted(Counter(local_ids).items()):
        if n > 1:
            problems.append(f"generated list uses local id {local} {n} times")

    base = next_task_id(store)
    real_id = {local: base + i for i, local in enumerate(local_ids)}

    drafts: list[Task] = []
    for local, p in zip(local_ids, proposals, strict=True):
        deps: list[int] = []
        for dep in p.depends_on:
            if isinstance(dep, str):
                kind = "a subtask" if is_subtask_id(dep) else "a non-numeric id"
                problems.append(f"generated task {local} depends on {kind} {dep!r}")
            elif dep == local:
                problems.append(f"generated task {local} depends on itself")
            elif dep not in real_id:
                problems.append(f"generated task {local} depends on {dep}, which is not in the generated list")
            elif real_id[dep] not in deps:
                deps.append(real_id[dep])
        drafts.append(
            Task(
                id=real_id[local],
                title=p.title,
                description=p.description,
                priority=p.priority,
                depends_on=deps,
            )
        )

    if problems:
        raise IntegrityError(problems, summary="generated task list has broken references")

    store.insert_tasks(drafts)
    return drafts


def parse_prd(state: AppState, prd_path: str | Path) -> list[Task]:
    """PRD file -> generated tasks appended to the store."""
    store = state.open_store()

    path = Path(prd_path)
    try:
        document = path.read_text("utf-8")
    except OSError as e:
        raise TaskPilotError(f"cannot read PRD file {path}: {e}") from e

    proposals = make_generator(state).generate_tasks_from_document(document)
    added = import_generated_tasks(store, proposals)
    logger.info("PRD %s -> %d tasks (ids %s..%s)", path, len(added), added[0].id, added[-1].id)
    return added


def expand_task(state: AppState, task_id: int | str) -> list[Subtask]:
    store = state.open_store()
    task = store.get_task(task_id)
    titles = make_generator(state).generate_subtasks_from_task(task)
    return store.add_subtasks(task.id, titles)


def revise_tasks(state: AppState, from_id: int | str, change_prompt: str) -> RevisionOutcome:
    store = state.open_store()
    start = parse_task_id(from_id)
    past, future = store.split(start)

    proposals = make_generator(state).generate_revised_future_tasks(
        change_prompt,
        past,
        future,
        last_task_id=store.last_task_id,
    )
    return merge_revision(store, start, proposals)
