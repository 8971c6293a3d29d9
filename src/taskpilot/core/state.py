# src/taskpilot/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..tasks.task_store import TaskStore
from .ports import LLMClient


@dataclass
class AppState:
    """
    Everything one CLI invocation needs, built once by the bootstrap.

    The store is opened per command (load -> mutate -> save); no task data is
    cached here between commands.
    """

    # Store Settings on the state for easy access in other modules.
    settings: Any
    tasks_file: Path
    llm: LLMClient

    def open_store(self) -> TaskStore:
        return TaskStore.open(self.tasks_file)

    @property
    def responses_dir(self) -> Path | None:
        if not getattr(self.settings, "save_responses", False):
            return None
        return Path(self.settings.data_dir) / "responses"
