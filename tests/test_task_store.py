# tests/test_task_store.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskpilot.errors import IdentifierError, IntegrityError, StructuralError, TaskPilotError
from taskpilot.tasks.task_models import TaskPriority, TaskStatus
from taskpilot.tasks.task_store import TaskStore


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    return TaskStore.create(tmp_path / "tasks.json")


def test_create_writes_empty_document(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    TaskStore.create(path)
    data = json.loads(path.read_text("utf-8"))
    assert data == {"version": 1, "lastTaskId": 0, "tasks": []}


def test_create_refuses_to_overwrite_without_force(store: TaskStore) -> None:
    assert store.path is not None
    with pytest.raises(TaskPilotError):
        TaskStore.create(store.path)
    TaskStore.create(store.path, force=True)


def test_add_assigns_increasing_ids(store: TaskStore) -> None:
    a = store.add_task(title="A")
    b = store.add_task(title="B", priority=TaskPriority.HIGH, depends_on=[a.id])
    assert (a.id, b.id) == (1, 2)
    assert b.depends_on == [1]
    assert b.status == TaskStatus.TODO


def test_save_and_reopen_round_trip(store: TaskStore) -> None:
    a = store.add_task(title="A", description="first")
    store.add_task(title="B", depends_on=[a.id])
    store.add_subtasks(a.id, ["one", "two"])
    store.set_status("1.1", TaskStatus.DONE)

    assert store.path is not None
    reopened = TaskStore.open(store.path)
    assert reopened.tasks == store.tasks
    assert reopened.last_task_id == 2


def test_subtask_ids_are_never_reused(store: TaskStore) -> None:
    store.add_task(title="A")
    store.add_task(title="B")
    task = store.add_task(title="Parent")
    store.add_subtasks(task.id, ["s1", "s2"])
    store.add_task(title="unrelated")
    store.add_subtask(task.id, "s3")
    assert [s.id for s in store.get_task(task.id).subtasks] == ["3.1", "3.2", "3.3"]

    store.remove_subtask("3.2")
    added = store.add_subtask(task.id, "s4")
    assert added.id == "3.4"

    assert store.path is not None
    reopened = TaskStore.open(store.path)
    assert reopened.add_subtask(task.id, "s5").id == "3.5"


def test_removed_top_id_is_not_reused(store: TaskStore) -> None:
    store.add_task(title="A")
    top = store.add_task(title="B")
    store.remove_task(top.id)
    assert store.last_task_id == 2

    assert store.path is not None
    reopened = TaskStore.open(store.path)
    assert reopened.add_task(title="C").id == 3


def test_remove_strips_dependency_references(store: TaskStore) -> None:
    a = store.add_task(title="A")
    b = store.add_task(title="B", depends_on=[a.id])
    c = store.add_task(title="C", depends_on=[a.id, b.id])

    stripped = store.remove_task(a.id)

    assert stripped == [b.id, c.id]
    assert store.get_task(b.id).depends_on == []
    assert store.get_task(c.id).depends_on == [b.id]


def test_unknown_ids_raise_identifier_error(store: TaskStore) -> None:
    store.add_task(title="A")
    with pytest.raises(IdentifierError):
        store.get_task(42)
    with pytest.raises(IdentifierError):
        store.remove_task("42")
    with pytest.raises(IdentifierError):
        store.set_status("1.9", TaskStatus.DONE)
    with pytest.raises(IdentifierError):
        store.add_subtask(42, "nope")


def test_add_with_dangling_dependency_is_rejected_and_not_saved(store: TaskStore) -> None:
    store.add_task(title="A")
    with pytest.raises(IntegrityError) as exc:
        store.add_task(title="B", depends_on=[99])
    assert "99" in str(exc.value)

    assert store.path is not None
    assert TaskStore.open(store.path).count_tasks() == 1


def test_update_rejects_cycle_and_leaves_task_unchanged(store: TaskStore) -> None:
    a = store.add_task(title="A")
    b = store.add_task(title="B", depends_on=[a.id])

    with pytest.raises(IntegrityError) as exc:
        store.update_task(a.id, title="A2", depends_on=[b.id])
    assert any("cycle" in v for v in exc.value.violations)
    assert store.get_task(a.id).title == "A"
    assert store.get_task(a.id).depends_on == []


def test_update_self_dependency_is_rejected(store: TaskStore) -> None:
    a = store.add_task(title="A")
    with pytest.raises(IntegrityError):
        store.update_task(a.id, depends_on=[a.id])


def test_list_filters_by_status(store: TaskStore) -> None:
    store.add_task(title="A")
    b = store.add_task(title="B")
    store.set_status(b.id, TaskStatus.IN_PROGRESS)
    assert [t.id for t in store.list_tasks(status=TaskStatus.IN_PROGRESS)] == [b.id]
    assert len(store.list_tasks()) == 2


def test_empty_title_is_rejected(store: TaskStore) -> None:
    with pytest.raises(TaskPilotError):
        store.add_task(title="   ")


def test_open_missing_file(tmp_path: Path) -> None:
    with pytest.raises(StructuralError):
        TaskStore.open(tmp_path / "missing.json")


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"tasks": {}}',
        '{"tasks": [{"id": "1", "title": "x"}]}',
        '{"tasks": [{"id": 1, "title": ""}]}',
        '{"tasks": [{"id": 1, "title": "x", "status": "later"}]}',
        '{"tasks": [{"id": 1, "title": "x"}, {"id": 1, "title": "y"}]}',
        '{"tasks": [{"id": 1, "title": "x", "dependsOn": ["2"]}]}',
        '{"tasks": [{"id": 1, "title": "x", "subtasks": [{"id": "2.1", "title": "s"}]}]}',
        '{"lastTaskId": -1, "tasks": []}',
    ],
)
def test_malformed_document_is_structural_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(content, "utf-8")
    with pytest.raises(StructuralError):
        TaskStore.open(path)


def test_document_without_high_water_mark_is_accepted(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text('{"tasks": [{"id": 3, "title": "x", "dependsOn": []}]}', "utf-8")
    store = TaskStore.open(path)
    assert store.last_task_id == 3
    assert store.get_task(3).priority == TaskPriority.MEDIUM
