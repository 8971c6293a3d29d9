# src/taskpilot/cli/render.py

"""Plain-text and Markdown views of the task store (no mutation here)."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ..tasks.task_models import Task, TaskStatus
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)

_TASK_FILE_RE = re.compile(r"^task_\d+\.md$")

STATUS_ICONS = {
    TaskStatus.TODO: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.DONE: "[x]",
    TaskStatus.BLOCKED: "[!]",
}


def _dep_marks(task: Task, store: TaskStore) -> str:
    marks: list[str] = []
    for dep in task.depends_on:
        dep_task = store.find_task(dep)
        if dep_task is None:
            marks.append(f"{dep}?")
        elif dep_task.status == TaskStatus.DONE:
            marks.append(f"{dep}+")
        else:
            marks.append(f"{dep}-")
    return ", ".join(marks)


def _subtask_progress(task: Task) -> str:
    if not task.subtasks:
        return ""
    done = sum(1 for s in task.subtasks if s.status == TaskStatus.DONE)
    return f"{done}/{len(task.subtasks)}"


def format_task_line(task: Task, store: TaskStore) -> str:
    line = f"{STATUS_ICONS[task.status]} {task.id:>3}  {task.priority.value:<6}  {task.status.value:<10}  {task.title}"
    deps = _dep_marks(task, store)
    if deps:
        line += f"  (deps: {deps})"
    progress = _subtask_progress(task)
    if progress:
        line += f"  [subtasks {progress}]"
    return line


def format_task_list(tasks: list[Task], store: TaskStore) -> str:
    if not tasks:
        return "No tasks."
    lines = [format_task_line(t, store) for t in tasks]
    lines.append("")
    lines.append("deps: + done, - not done, ? missing")
    return "\n".join(lines)


def format_task_detail(task: Task, store: TaskStore) -> str:
    lines = [
        f"Task {task.id}: {task.title}",
        f"  Priority: {task.priority.value}",
        f"  Status: {task.status.value}",
        f"  Depends on: {_dep_marks(task, store) or 'none'}",
    ]
    if task.description:
        lines.append(f"  Description: {task.description}")
    if task.subtasks:
        lines.append("  Subtasks:")
        for sub in task.subtasks:
            lines.append(f"    {STATUS_ICONS[sub.status]} {sub.id} {sub.title}")
    return "\n".join(lines)


def render_task_markdown(task: Task, store: TaskStore) -> str:
    lines = [
        f"# Task {task.id}: {task.title}",
        "",
        f"- **Status:** {task.status.value}",
        f"- **Priority:** {task.priority.value}",
    ]
    if task.depends_on:
        deps = []
        for dep in task.depends_on:
            dep_task = store.find_task(dep)
            label = f"{dep} ({dep_task.status.value})" if dep_task else f"{dep} (missing)"
            deps.append(label)
        lines.append(f"- **Depends on:** {', '.join(deps)}")
    else:
        lines.append("- **Depends on:** none")

    lines.extend(["", "## Description", "", task.description or "_No description._"])

    if task.subtasks:
        lines.extend(["", "## Subtasks", ""])
        for sub in task.subtasks:
            check = "x" if sub.status == TaskStatus.DONE else " "
            lines.append(f"- [{check}] {sub.id} {sub.title} ({sub.status.value})")

    return "\n".join(lines) + "\n"


def task_filename(task: Task) -> str:
    return f"task_{task.id:03d}.md"


def write_task_files(store: TaskStore, out_dir: str | Path) -> list[Path]:
    """
    Write task_NNN.md for every task.

    task_NNN.md files of tasks no longer in the store are deleted, so the
    directory mirrors the store. Other files are left alone.
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for task in store.tasks:
        path = out / task_filename(task)
        path.write_text(render_task_markdown(task, store), "utf-8")
        written.append(path)

    keep = {p.name for p in written}
    stale = [p for p in out.iterdir() if p.is_file() and _TASK_FILE_RE.match(p.name) and p.name not in keep]
    for path in stale:
        path.unlink()
    if stale:
        logger.info("Removed %d stale task files: %s", len(stale), sorted(p.name for p in stale))

    logger.info("Generated %d task files in %s", len(written), out)
    return written
