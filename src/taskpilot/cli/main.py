# src/taskpilot/cli/main.py

"""
CLI entrypoint.

Each invocation is one load -> mutate -> save cycle against the task file.
Validation errors, unknown ids and LLM failures are reported on stderr and
exit non-zero without touching the file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from ..core.state import AppState
from ..errors import IntegrityError, LifecycleError, TaskPilotError
from ..llm.client import friendly_llm_error_message
from ..logging_setup import setup_logging
from ..tasks import task_api
from ..tasks.task_graph import dependency_violations, graph_of, unmet_dependencies
from ..tasks.task_ids import is_subtask_id, parse_task_id
from ..tasks.task_models import TaskPriority, TaskStatus
from ..tasks.task_scheduler import select_next
from ..tasks.task_store import TaskStore
from .bootstrap import create_initial_state
from .render import format_task_detail, format_task_list, write_task_files

logger = logging.getLogger(__name__)

PRIORITY_CHOICE = click.Choice([p.value for p in TaskPriority], case_sensitive=False)


class TaskPilotGroup(click.Group):
    """Turns TaskPilotError into `Error: ...` on stderr plus the error's exit code."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except TaskPilotError as e:
            logger.debug("Command failed: %s", e, exc_info=True)
            click.echo(f"Error: {friendly_llm_error_message(e)}", err=True)
            ctx.exit(e.exit_code)


def _parse_id_list(raw: str | None) -> list[int]:
    """'1,2 3' -> [1, 2, 3]. Subtask ids are integrity errors, not unknown ids."""
    if raw is None:
        return []
    parts = raw.replace(",", " ").split()
    subtasks = [p for p in parts if is_subtask_id(p)]
    if subtasks:
        raise IntegrityError(
            [f"depends on subtask {p} (only tasks can be dependencies)" for p in subtasks],
            summary="invalid --depends-on",
        )
    return [parse_task_id(p) for p in parts]


def _parse_status(raw: str) -> TaskStatus:
    try:
        return TaskStatus.parse(raw)
    except ValueError as e:
        raise LifecycleError(str(e)) from None


def _state(ctx: click.Context) -> AppState:
    return ctx.find_object(AppState)


@click.group(cls=TaskPilotGroup)
@click.option(
    "--file",
    "tasks_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Task file to operate on (default: TASKPILOT_TASKS_FILE or tasks.json).",
)
@click.option("-v", "--verbose", count=True, help="More log output on stderr (-v info, -vv debug).")
@click.version_option(package_name="taskpilot")
@click.pass_context
def cli(ctx: click.Context, tasks_file: Path | None, verbose: int) -> None:
    """Task graph manager: dependencies, priorities and the next task to work on."""
    if isinstance(ctx.obj, AppState):
        # Injected (tests / embedding): caller owns logging and paths.
        return

    state = create_initial_state(tasks_file=tasks_file)
    settings = state.settings

    level_name = str(getattr(settings, "log_level", "WARNING")).upper()
    console_level = getattr(logging, level_name, logging.WARNING)
    if verbose == 1:
        console_level = min(console_level, logging.INFO)
    elif verbose >= 2:
        console_level = logging.DEBUG

    setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.debug("Starting %s tasks_file=%s", getattr(settings, "app_name", "taskpilot"), state.tasks_file)
    ctx.obj = state


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing task file.")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Create an empty task file."""
    state = _state(ctx)
    TaskStore.create(state.tasks_file, force=force)
    click.echo(f"Initialized empty task file at {state.tasks_file}")


@cli.command()
@click.argument("title")
@click.option("-d", "--description", default="", help="Longer description.")
@click.option("-p", "--priority", type=PRIORITY_CHOICE, default="medium", show_default=True)
@click.option("--depends-on", default=None, help="Comma separated task ids.")
@click.pass_context
def add(ctx: click.Context, title: str, description: str, priority: str, depends_on: str | None) -> None:
    """Add a task."""
    store = _state(ctx).open_store()
    task = store.add_task(
        title=title,
        description=description,
        priority=TaskPriority.parse(priority),
        depends_on=_parse_id_list(depends_on),
    )
    click.echo(f"Added task {task.id}: {task.title}")


@cli.command("add-subtask")
@click.argument("task_id")
@click.argument("title")
@click.pass_context
def add_subtask(ctx: click.Context, task_id: str, title: str) -> None:
    """Add a subtask to TASK_ID."""
    store = _state(ctx).open_store()
    sub = store.add_subtask(task_id, title)
    click.echo(f"Added subtask {sub.id}: {sub.title}")


@cli.command("list")
@click.option("--status", "status_filter", default=None, help="Only tasks with this status.")
@click.pass_context
def list_cmd(ctx: click.Context, status_filter: str | None) -> None:
    """List tasks."""
    store = _state(ctx).open_store()
    status = _parse_status(status_filter) if status_filter else None
    click.echo(format_task_list(store.list_tasks(status=status), store))


@cli.command("next")
@click.pass_context
def next_cmd(ctx: click.Context) -> None:
    """Show the next actionable task."""
    store = _state(ctx).open_store()
    task = select_next(store)
    if task is None:
        click.echo("No actionable task: everything is done, in progress, blocked or waiting on dependencies.")
        for waiting in store.list_tasks(status=TaskStatus.TODO):
            unmet = unmet_dependencies(waiting, store)
            if unmet:
                click.echo(f"  task {waiting.id} waits on {', '.join(str(d) for d in unmet)}")
        return
    click.echo(format_task_detail(task, store))


@cli.command()
@click.argument("item_id")
@click.argument("new_status")
@click.pass_context
def status(ctx: click.Context, item_id: str, new_status: str) -> None:
    """Set the status of a task (N) or subtask (N.M)."""
    store = _state(ctx).open_store()
    target = _parse_status(new_status)
    previous = store.set_status(item_id, target)
    click.echo(f"{item_id.strip()}: {previous.value} -> {target.value}")


@cli.command()
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("-d", "--description", default=None)
@click.option("-p", "--priority", type=PRIORITY_CHOICE, default=None)
@click.option("--depends-on", default=None, help="Comma separated task ids ('' clears).")
@click.pass_context
def update(
    ctx: click.Context,
    task_id: str,
    title: str | None,
    description: str | None,
    priority: str | None,
    depends_on: str | None,
) -> None:
    """Update fields of a task."""
    store = _state(ctx).open_store()
    task = store.update_task(
        task_id,
        title=title,
        description=description,
        priority=TaskPriority.parse(priority) if priority else None,
        depends_on=_parse_id_list(depends_on) if depends_on is not None else None,
    )
    click.echo(f"Updated task {task.id}: {task.title}")


@cli.command()
@click.argument("item_id")
@click.pass_context
def remove(ctx: click.Context, item_id: str) -> None:
    """Remove a task (N) with its subtasks, or a single subtask (N.M)."""
    store = _state(ctx).open_store()
    if is_subtask_id(item_id):
        sub = store.remove_subtask(item_id)
        click.echo(f"Removed subtask {sub.id}: {sub.title}")
        return
    task = store.get_task(item_id)
    stripped = store.remove_task(task.id)
    click.echo(f"Removed task {task.id}: {task.title}")
    if stripped:
        click.echo("Dependency removed from tasks: " + ", ".join(str(i) for i in stripped))


@cli.command()
@click.option("--out-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.pass_context
def generate(ctx: click.Context, out_dir: Path | None) -> None:
    """Write one Markdown file per task."""
    state = _state(ctx)
    store = state.open_store()
    target = out_dir if out_dir is not None else Path(state.settings.tasks_dir)
    try:
        written = write_task_files(store, target)
    except OSError as e:
        raise TaskPilotError(f"cannot write task files to {target}: {e}") from e
    click.echo(f"Wrote {len(written)} task file(s) to {target}")


@cli.command("parse-prd")
@click.argument("prd_file", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def parse_prd(ctx: click.Context, prd_file: Path) -> None:
    """Generate tasks from a PRD document using the LLM."""
    added = task_api.parse_prd(_state(ctx), prd_file)
    click.echo(f"Added {len(added)} task(s) from {prd_file}:")
    for task in added:
        deps = f" (deps: {', '.join(str(d) for d in task.depends_on)})" if task.depends_on else ""
        click.echo(f"  {task.id}: {task.title}{deps}")


@cli.command()
@click.argument("task_id")
@click.pass_context
def expand(ctx: click.Context, task_id: str) -> None:
    """Break a task into subtasks using the LLM."""
    added = task_api.expand_task(_state(ctx), task_id)
    click.echo(f"Added {len(added)} subtask(s):")
    for sub in added:
        click.echo(f"  {sub.id}: {sub.title}")


@cli.command()
@click.option("--from", "from_id", required=True, help="First task id of the segment to revise.")
@click.option("--prompt", "change_prompt", required=True, help="Description of the change.")
@click.pass_context
def revise(ctx: click.Context, from_id: str, change_prompt: str) -> None:
    """Revise tasks from --from onward to reflect a change, using the LLM."""
    outcome = task_api.revise_tasks(_state(ctx), from_id, change_prompt)
    click.echo(f"Revised tasks from {outcome.from_id}:")
    click.echo(f"  kept:    {', '.join(map(str, outcome.kept)) or '-'}")
    click.echo(f"  added:   {', '.join(map(str, outcome.added)) or '-'}")
    click.echo(f"  removed: {', '.join(map(str, outcome.removed)) or '-'}")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check dependencies for dangling references and cycles."""
    store = _state(ctx).open_store()
    graph = graph_of(store.tasks)
    problems = dependency_violations(graph)
    if problems:
        raise IntegrityError(problems, summary=f"{store.path} has dependency problems")
    click.echo(f"OK: {store.count_tasks()} task(s), no dangling references, no cycles.")


def main() -> None:
    cli(prog_name="taskpilot")


if __name__ == "__main__":
    main()
