# tests/test_cli.py

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from taskpilot.cli.main import cli
from taskpilot.core.state import AppState
from taskpilot.tasks.task_models import TaskStatus

from .fakes import FakeLLMClient


@pytest.fixture()
def run(state: AppState):
    runner = CliRunner()

    def _run(*args: str):
        return runner.invoke(cli, list(args), obj=state)

    return _run


def test_add_list_and_next(run, state: AppState) -> None:
    assert run("add", "Setup repo", "-p", "high").exit_code == 0
    assert run("add", "Write model", "--depends-on", "1").exit_code == 0
    run("add", "Docs", "-p", "low")

    listed = run("list")
    assert listed.exit_code == 0
    assert "Setup repo" in listed.output
    assert "(deps: 1-)" in listed.output

    nxt = run("next")
    assert nxt.exit_code == 0
    assert "Task 1: Setup repo" in nxt.output

    assert run("status", "1", "done").exit_code == 0
    assert "Task 2: Write model" in run("next").output


def test_list_filters_by_status(run) -> None:
    run("add", "A")
    run("add", "B")
    run("status", "2", "in-progress")

    result = run("list", "--status", "inprogress")
    assert result.exit_code == 0
    assert " B" in result.output
    assert " A" not in result.output


def test_next_with_nothing_to_do(run) -> None:
    result = run("next")
    assert result.exit_code == 0
    assert "No actionable task" in result.output


def test_next_explains_waiting_tasks(run) -> None:
    run("add", "A")
    run("add", "B", "--depends-on", "1")
    run("status", "1", "inprogress")

    result = run("next")
    assert result.exit_code == 0
    assert "task 2 waits on 1" in result.output


def test_unknown_id_exit_code(run) -> None:
    result = run("status", "42", "done")
    assert result.exit_code == 3
    assert "Error:" in result.output


def test_invalid_status_is_lifecycle_error(run) -> None:
    run("add", "A")
    result = run("status", "1", "finished")
    assert result.exit_code == 5
    assert "invalid status" in result.output


def test_done_with_open_subtasks_is_refused(run, state: AppState) -> None:
    run("add", "Parent")
    run("add-subtask", "1", "child one")
    run("add-subtask", "1", "child two")
    run("status", "1.1", "done")

    result = run("status", "1", "done")
    assert result.exit_code == 5
    assert "1.2" in result.output
    assert state.open_store().get_task(1).status == TaskStatus.TODO


def test_dangling_dependency_exit_code(run, state: AppState) -> None:
    result = run("add", "B", "--depends-on", "7")
    assert result.exit_code == 4
    assert "missing task 7" in result.output
    assert state.open_store().count_tasks() == 0


def test_remove_task_and_subtask(run, state: AppState) -> None:
    run("add", "A")
    run("add", "B", "--depends-on", "1")
    run("add-subtask", "2", "child")

    result = run("remove", "2.1")
    assert result.exit_code == 0
    assert "Removed subtask 2.1" in result.output

    result = run("remove", "1")
    assert result.exit_code == 0
    assert "Dependency removed from tasks: 2" in result.output
    assert state.open_store().get_task(2).depends_on == []


def test_update_task(run, state: AppState) -> None:
    run("add", "A")
    run("add", "B")
    result = run("update", "2", "--title", "B2", "-p", "high", "--depends-on", "1")
    assert result.exit_code == 0
    task = state.open_store().get_task(2)
    assert (task.title, task.priority.value, task.depends_on) == ("B2", "high", [1])


def test_missing_task_file_is_structural_error(run, state: AppState) -> None:
    state.tasks_file.unlink()
    result = run("list")
    assert result.exit_code == 7
    assert "taskpilot init" in result.output


def test_init_refuses_existing_file(run, state: AppState) -> None:
    assert run("init").exit_code == 1
    assert run("init", "--force").exit_code == 0


def test_validate_reports_all_problems(run, state: AppState) -> None:
    doc = {
        "version": 1,
        "lastTaskId": 3,
        "tasks": [
            {"id": 1, "title": "a", "dependsOn": [2]},
            {"id": 2, "title": "b", "dependsOn": [1]},
            {"id": 3, "title": "c", "dependsOn": [9]},
        ],
    }
    state.tasks_file.write_text(json.dumps(doc), "utf-8")

    result = run("validate")
    assert result.exit_code == 4
    assert "dependency cycle between tasks 1, 2" in result.output
    assert "task 3 depends on missing task 9" in result.output


def test_validate_ok(run) -> None:
    run("add", "A")
    result = run("validate")
    assert result.exit_code == 0
    assert result.output.startswith("OK: 1 task(s)")


def test_generate_writes_markdown_files(run, state: AppState, tmp_path: Path) -> None:
    run("add", "A", "-d", "first task")
    run("add", "B", "--depends-on", "1")
    out_dir = tmp_path / "out"

    result = run("generate", "--out-dir", str(out_dir))

    assert result.exit_code == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["task_001.md", "task_002.md"]
    text = (out_dir / "task_002.md").read_text("utf-8")
    assert text.startswith("# Task 2: B")
    assert "1 (todo)" in text


def test_expand_and_collaborator_failure(run, state: AppState, llm: FakeLLMClient) -> None:
    run("add", "Build API")
    llm.next_text = '[{"title": "Routes"}, {"title": "Tests"}]'

    result = run("expand", "1")
    assert result.exit_code == 0
    assert "1.1: Routes" in result.output

    llm.next_text = ""
    result = run("expand", "1")
    assert result.exit_code == 6
    assert len(state.open_store().get_task(1).subtasks) == 2


def test_parse_prd_command(run, llm: FakeLLMClient, tmp_path: Path) -> None:
    prd = tmp_path / "prd.txt"
    prd.write_text("Build a todo app.", "utf-8")
    llm.next_text = json.dumps([{"title": "Model"}, {"title": "UI", "dependsOn": [1]}])

    result = run("parse-prd", str(prd))

    assert result.exit_code == 0
    assert "Added 2 task(s)" in result.output
    assert "2: UI (deps: 1)" in result.output


def test_revise_command_rejection_exit_code(run, state: AppState, llm: FakeLLMClient) -> None:
    run("add", "A")
    run("add", "B", "--depends-on", "1")
    llm.next_text = json.dumps([{"id": 2, "title": "B", "dependsOn": [99]}])

    result = run("revise", "--from", "2", "--prompt", "change things")

    assert result.exit_code == 4
    assert "99" in result.output
    assert state.open_store().get_task(2).depends_on == [1]


def test_subtask_dependency_is_integrity_error(run, state: AppState) -> None:
    run("add", "A")
    run("add-subtask", "1", "child")

    result = run("add", "B", "--depends-on", "1.1")

    assert result.exit_code == 4
    assert "depends on subtask 1.1" in result.output
    assert state.open_store().count_tasks() == 1


def test_generate_removes_files_of_removed_tasks(run, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    (out_dir / "notes.md").write_text("keep me", "utf-8")
    run("add", "A")
    run("add", "B")
    run("generate", "--out-dir", str(out_dir))

    run("remove", "2")
    result = run("generate", "--out-dir", str(out_dir))

    assert result.exit_code == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["notes.md", "task_001.md"]
