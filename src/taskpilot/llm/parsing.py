# src/taskpilot/llm/parsing.py

"""
Turning raw LLM text into untrusted-but-shaped records.

Two explicit stages:
- STRICT: strip Markdown fences, parse a JSON array.
- FALLBACK: best-effort line splitting, only where a caller opts in
  (subtask expansion). Results carry their stage so callers and tests can
  tell a low-confidence parse from a real one.

Nothing here touches the store. Shape problems become CollaboratorError;
referential problems are left for the task engine to judge.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..errors import CollaboratorError
from ..tasks.task_models import ProposedTask, TaskPriority

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z]*[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)
_BULLET_RE = re.compile(r"^(?:[-*+•]\s+|\d+[.)]\s+|\[\s?[xX ]?\s?\]\s+)")


class ParseStage(StrEnum):
    STRICT = "strict"
    FALLBACK = "fallback"


@dataclass(slots=True, frozen=True)
class ParsedResponse:
    items: list[Any]
    stage: ParseStage

    @property
    def low_confidence(self) -> bool:
        return self.stage == ParseStage.FALLBACK


def strip_code_fences(text: str) -> str:
    """Replace ```json ... ``` blocks by their content and trim."""
    return _FENCE_RE.sub(lambda m: m.group(1), text or "").strip()


def _extract_json_array(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("[") and raw.endswith("]"):
        return raw
    first = raw.find("[")
    last = raw.rfind("]")
    if first != -1 and last != -1 and last > first:
        return raw[first : last + 1]
    return raw


def parse_strict(text: str) -> ParsedResponse:
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise CollaboratorError("LLM returned an empty response")
    try:
        data = json.loads(_extract_json_array(cleaned))
    except json.JSONDecodeError as e:
        raise CollaboratorError(f"LLM response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise CollaboratorError("LLM response is not a JSON array")
    return ParsedResponse(items=data, stage=ParseStage.STRICT)


def parse_fallback_lines(text: str) -> ParsedResponse:
    """Best effort: one item per non-empty line, bullets and fence lines dropped."""
    items: list[str] = []
    for line in strip_code_fences(text).splitlines():
        line = line.strip()
        if not line or "```" in line or line in {"[", "]", "{", "}", "[]", "{}"}:
            continue
        line = _BULLET_RE.sub("", line).strip().strip(",").strip().strip('"').strip()
        if line:
            items.append(line)
    return ParsedResponse(items=items, stage=ParseStage.FALLBACK)


def parse_with_fallback(text: str, *, check: Callable[[ParsedResponse], object] | None = None) -> ParsedResponse:
    """
    STRICT first; FALLBACK when the strict parse fails or when `check`
    (a shape validator raising CollaboratorError) rejects the strict result.
    """
    try:
        parsed = parse_strict(text)
        if check is not None:
            check(parsed)
        return parsed
    except CollaboratorError as e:
        logger.warning("Strict parse failed (%s); attempting fallback line-by-line parsing", e)

    parsed = parse_fallback_lines(text)
    if not parsed.items:
        raise CollaboratorError("LLM response could not be parsed (strict and fallback stages both failed)")
    logger.info("Extracted %d items using fallback parsing", len(parsed.items))
    return parsed


# ---- shape coercion ----


def _coerce_int(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str) and v.strip().isdigit():
        return int(v.strip())
    return None


def _coerce_dep(v: Any) -> int | str:
    as_int = _coerce_int(v)
    return as_int if as_int is not None else str(v)


def coerce_proposed_task(raw: Any, *, require_id: bool) -> ProposedTask:
    """Raise ValueError describing what is wrong with one element."""
    if not isinstance(raw, dict):
        raise ValueError("not a JSON object")

    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValueError("missing or empty 'title'")

    tid: int | None = None
    if "id" in raw and raw["id"] is not None:
        tid = _coerce_int(raw["id"])
        if tid is None or tid < 1:
            raise ValueError(f"'id' must be a positive integer, got {raw['id']!r}")
    elif require_id:
        raise ValueError("missing 'id'")

    description = raw.get("description") or ""
    if not isinstance(description, str):
        description = str(description)

    try:
        priority = TaskPriority.parse(raw.get("priority") or "medium")
    except ValueError:
        logger.debug("Unknown priority %r from LLM; using medium", raw.get("priority"))
        priority = TaskPriority.MEDIUM

    deps_raw = raw.get("dependsOn", raw.get("depends_on", []))
    if deps_raw is None:
        deps_raw = []
    if not isinstance(deps_raw, list):
        deps_raw = [deps_raw]

    return ProposedTask(
        title=title.strip(),
        id=tid,
        description=description.strip(),
        priority=priority,
        depends_on=tuple(_coerce_dep(d) for d in deps_raw),
    )


def coerce_proposed_tasks(parsed: ParsedResponse, *, require_id: bool) -> list[ProposedTask]:
    """All-or-nothing: every malformed element is reported in one CollaboratorError."""
    out: list[ProposedTask] = []
    problems: list[str] = []
    for pos, raw in enumerate(parsed.items, start=1):
        try:
            out.append(coerce_proposed_task(raw, require_id=require_id))
        except ValueError as e:
            problems.append(f"element #{pos}: {e}")
    if problems:
        raise CollaboratorError("LLM returned malformed tasks:\n" + "\n".join(f"  - {p}" for p in problems))
    return out


def coerce_subtask_titles(parsed: ParsedResponse) -> list[str]:
    """Accept [{"title": ...}] (strict) or plain strings (strict or fallback)."""
    titles: list[str] = []
    problems: list[str] = []
    for pos, raw in enumerate(parsed.items, start=1):
        if isinstance(raw, dict):
            raw = raw.get("title")
        if isinstance(raw, str) and raw.strip():
            titles.append(raw.strip())
        else:
            problems.append(f"element #{pos}: expected an object with a non-empty 'title'")
    if problems:
        raise CollaboratorError("LLM returned malformed subtasks:\n" + "\n".join(f"  - {p}" for p in problems))
    if not titles:
        raise CollaboratorError("LLM returned no subtasks")
    return titles
