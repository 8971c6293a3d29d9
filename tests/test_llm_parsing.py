# tests/test_llm_parsing.py

from __future__ import annotations

import pytest

from taskpilot.errors import CollaboratorError
from taskpilot.llm.parsing import (
    ParseStage,
    coerce_proposed_tasks,
    coerce_subtask_titles,
    parse_fallback_lines,
    parse_strict,
    parse_with_fallback,
    strip_code_fences,
)
from taskpilot.tasks.task_models import TaskPriority


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n[1, 2]\n```') == "[1, 2]"
    assert strip_code_fences("  [3]  ") == "[3]"


def test_strict_parses_fenced_array_with_chatter() -> None:
    parsed = parse_strict('Here you go:\n```json\n[{"title": "A"}]\n```\nEnjoy!')
    assert parsed.stage == ParseStage.STRICT
    assert parsed.items == [{"title": "A"}]
    assert not parsed.low_confidence


@pytest.mark.parametrize("text", ["", "not json at all", '{"title": "A"}'])
def test_strict_rejects(text: str) -> None:
    with pytest.raises(CollaboratorError):
        parse_strict(text)


def test_fallback_splits_lines_and_drops_bullets() -> None:
    parsed = parse_fallback_lines("Subtasks:\n- Write schema\n2. Add endpoint\n* Test it\n\n")
    assert parsed.stage == ParseStage.FALLBACK
    assert parsed.low_confidence
    assert parsed.items == ["Subtasks:", "Write schema", "Add endpoint", "Test it"]


def test_with_fallback_prefers_strict() -> None:
    parsed = parse_with_fallback('["a", "b"]', check=coerce_subtask_titles)
    assert parsed.stage == ParseStage.STRICT


def test_with_fallback_uses_lines_when_strict_fails() -> None:
    parsed = parse_with_fallback("- a\n- b")
    assert parsed.stage == ParseStage.FALLBACK
    assert parsed.items == ["a", "b"]


def test_with_fallback_uses_lines_when_shape_check_fails() -> None:
    parsed = parse_with_fallback("[1, 2]\nfirst step\nsecond step", check=coerce_subtask_titles)
    assert parsed.stage == ParseStage.FALLBACK
    assert parsed.items == ["[1, 2]", "first step", "second step"]


def test_with_fallback_gives_up_on_nothing() -> None:
    with pytest.raises(CollaboratorError):
        parse_with_fallback("```\n```")


def test_coerce_tasks_normalizes_fields() -> None:
    parsed = parse_strict(
        '[{"id": "3", "title": " Build ", "priority": "urgent", "dependsOn": [1, "2", "3.1"]},'
        ' {"title": "Other", "priority": "whatever", "depends_on": 1}]'
    )
    first, second = coerce_proposed_tasks(parsed, require_id=False)

    assert first.id == 3
    assert first.title == "Build"
    assert first.priority == TaskPriority.HIGH
    assert first.depends_on == (1, 2, "3.1")

    assert second.id is None
    assert second.priority == TaskPriority.MEDIUM
    assert second.depends_on == (1,)


def test_coerce_tasks_reports_every_bad_element() -> None:
    parsed = parse_strict('[{"title": ""}, "nope", {"id": 0, "title": "x"}, {"title": "ok"}]')
    with pytest.raises(CollaboratorError) as exc:
        coerce_proposed_tasks(parsed, require_id=False)
    msg = str(exc.value)
    assert "element #1" in msg
    assert "element #2" in msg
    assert "element #3" in msg
    assert "element #4" not in msg


def test_coerce_tasks_requires_id_for_revisions() -> None:
    parsed = parse_strict('[{"title": "x"}]')
    with pytest.raises(CollaboratorError):
        coerce_proposed_tasks(parsed, require_id=True)


def test_coerce_subtask_titles() -> None:
    assert coerce_subtask_titles(parse_strict('[{"title": "a"}, "b"]')) == ["a", "b"]
    with pytest.raises(CollaboratorError):
        coerce_subtask_titles(parse_strict("[]"))
