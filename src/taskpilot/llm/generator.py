# src/taskpilot/llm/generator.py

"""
LLM-backed task generation.

Three operations, each returning validated-shape records that are still
untrusted for referential integrity:
- generate_tasks_from_document: PRD text -> flat task list (list-local 1-based deps)
- generate_subtasks_from_task: one task -> subtask titles
- generate_revised_future_tasks: change prompt + past/future -> replacement future list

Any failure (transport, missing key, unparseable output) is a CollaboratorError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from ..core.ports import LLMClient
from ..errors import CollaboratorError
from ..tasks.task_models import ProposedTask, Task
from .parsing import (
    ParseStage,
    coerce_proposed_tasks,
    coerce_subtask_titles,
    parse_strict,
    parse_with_fallback,
)

logger = logging.getLogger(__name__)

GENERATOR_SYSTEM_PROMPT = """
You are a project planning module for a software task tracker.

You do NOT chat with the user.
Output format: return STRICT JSON only (a JSON array). No extra text.
""".strip()

PRD_PROMPT = """
Parse the following Product Requirements Document (PRD) and generate a list of tasks in JSON format.
Each task should have the following fields: "title" (string), "description" (string), "priority" (string, e.g., "high", "medium", "low"), and "dependsOn" (array of integers, representing the IDs of tasks it depends on within this generated list).
Assign sequential IDs starting from 1 to the tasks you generate.

IMPORTANT: For each feature/implementation task, also create a corresponding test task that has the following:
1. Title format: "Test: [Original Task Title]"
2. Description describing what aspects need to be tested for the corresponding feature
3. Priority one level lower than the original task (high -> medium, medium -> low)
4. DependsOn should include the ID of the original task it's testing

Additionally, add a final "Rigorous Testing Phase" task that depends on all other test tasks, which should:
1. Include integration testing across components
2. Include performance testing where applicable
3. Include user acceptance testing if the project has a UI
4. Have comprehensive test coverage metrics

Output ONLY the JSON array of tasks, without any introductory text or explanation.

PRD Content:
```
{document}
```

JSON Output:
""".strip()

EXPAND_PROMPT = """
Given the following parent task, please break it down into smaller, actionable subtasks suitable for implementation.
Parent Task Title: "{title}"
Parent Task Description: "{description}"

Generate a JSON array containing objects, where each object represents a subtask and has a single field: "title" (string).

If this is a development or implementation task, include appropriate validation or test subtasks.
If this is already a test task, include subtasks for different test scenarios or coverage areas.

Output ONLY the JSON array of subtask objects, without any introductory text or explanation.

Example Output:
[{{"title": "Subtask 1 Title"}}, {{"title": "Subtask 2 Title"}}, {{"title": "Validate/Test functionality"}}]

JSON Output:
""".strip()

REVISE_PROMPT = """
Context: We are managing a project task list. Some tasks have been completed or are in progress:
--- Completed/In-Progress Tasks ---
{past}
---------------------------------

A change or new requirement has been identified:
--- Change Prompt ---
{change}
-------------------

Given this change, please review and revise the following list of remaining future tasks. Update their titles, descriptions, priorities, or dependencies as needed to align with the change. You can also add or remove tasks if necessary, but try to maintain existing task IDs where the task concept remains similar. New tasks must use IDs greater than {last_id}. Ensure dependencies reference valid IDs within the revised future task list or the completed task list.

IMPORTANT:
1. If you modify a feature/implementation task, also update its corresponding test task (usually titled "Test: [Feature Name]")
2. If you add a new feature task, also add a corresponding test task
3. Make sure all test tasks depend on their implementation tasks
4. Ensure the "Rigorous Testing Phase" task (if present) depends on all other test tasks

--- Future Tasks to Revise ---
{future}
----------------------------

Output ONLY the revised JSON array of future tasks in the same format as provided above, without any introductory text or explanation.

Revised JSON Output:
""".strip()


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def summarize_past(tasks: Sequence[Task]) -> str:
    return "\n".join(f"ID {t.id}: {t.title} ({t.status.value})" for t in tasks) or "(none)"


def future_as_json(tasks: Sequence[Task]) -> str:
    return json.dumps(
        [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "priority": t.priority.value,
                "dependsOn": list(t.depends_on),
            }
            for t in tasks
        ],
        ensure_ascii=False,
        indent=2,
    )


class TaskGenerator:
    def __init__(self, llm: LLMClient, *, backup_dir: str | Path | None = None) -> None:
        self._llm = llm
        self._backup_dir = Path(backup_dir) if backup_dir is not None else None

    # ---- helpers ----

    def _complete(self, prompt: str, *, temperature: float, max_tokens: int | None = None) -> str:
        raw = ""
        try:
            for piece in self._llm.stream_chat(
                [{"role": "user", "content": prompt}],
                GENERATOR_SYSTEM_PROMPT,
                temperature=temperature,
                max_tokens=max_tokens,
            ):
                raw += piece
        except CollaboratorError:
            raise
        except Exception as e:
            logger.exception("LLM call failed.")
            raise CollaboratorError(f"LLM call failed: {e.__class__.__name__}: {e}") from e

        raw = raw.strip()
        if not raw:
            raise CollaboratorError("LLM returned an empty response")
        logger.debug("LLM raw response len=%d", len(raw))
        return raw

    def _save_backup(self, name: str, content: str) -> None:
        """Keep a copy of the raw response next to the log (best-effort)."""
        if self._backup_dir is None:
            return
        path = self._backup_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, "utf-8")
        except OSError:
            logger.warning("Could not save LLM response backup to %s", path, exc_info=True)
            return
        logger.info("Saved LLM response backup to %s", path)

    # ---- operations ----

    def generate_tasks_from_document(self, document: str) -> list[ProposedTask]:
        if not document.strip():
            raise CollaboratorError("document is empty; nothing to parse")

        logger.info("Sending document (%d chars) to LLM for task generation", len(document))
        raw = self._complete(PRD_PROMPT.format(document=document), temperature=0.4, max_tokens=8192)

        parsed = parse_strict(raw)
        self._save_backup(f"prd_tasks_{_timestamp()}.json", json.dumps(parsed.items, ensure_ascii=False, indent=2))
        tasks = coerce_proposed_tasks(parsed, require_id=False)
        if not tasks:
            raise CollaboratorError("LLM returned an empty task list")

        logger.info("Parsed %d tasks from LLM response", len(tasks))
        return tasks

    def generate_subtasks_from_task(self, task: Task) -> list[str]:
        logger.info("Sending task id=%s to LLM for expansion", task.id)
        prompt = EXPAND_PROMPT.format(title=task.title, description=task.description or "N/A")
        raw = self._complete(prompt, temperature=0.3)

        parsed = parse_with_fallback(raw, check=coerce_subtask_titles)
        titles = coerce_subtask_titles(parsed)

        if parsed.stage == ParseStage.FALLBACK:
            self._save_backup(f"subtasks_fallback_{task.id}_{_timestamp()}.txt", "\n".join(titles))
        else:
            self._save_backup(
                f"subtasks_{task.id}_{_timestamp()}.json", json.dumps(parsed.items, ensure_ascii=False, indent=2)
            )

        logger.info("Parsed %d subtasks for task id=%s (stage=%s)", len(titles), task.id, parsed.stage.value)
        return titles

    def generate_revised_future_tasks(
        self,
        change_prompt: str,
        past: Sequence[Task],
        future: Sequence[Task],
        *,
        last_task_id: int,
    ) -> list[ProposedTask]:
        if not change_prompt.strip():
            raise CollaboratorError("change prompt is empty")

        prompt = REVISE_PROMPT.format(
            past=summarize_past(past),
            change=change_prompt.strip(),
            future=future_as_json(future),
            last_id=last_task_id,
        )
        logger.info("Sending revision request to LLM (past=%d future=%d)", len(past), len(future))
        raw = self._complete(prompt, temperature=0.4)

        parsed = parse_strict(raw)
        tasks = coerce_proposed_tasks(parsed, require_id=True)
        self._save_backup(f"revised_tasks_{_timestamp()}.json", json.dumps(parsed.items, ensure_ascii=False, indent=2))

        logger.info("Parsed %d revised tasks from LLM response", len(tasks))
        return tasks
