# src/taskpilot/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local data directory exists,
- wires the concrete LLM client into AppState.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import get_settings
from ..core.state import AppState
from ..llm.client import OpenAICompatLLMClient

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, tasks_file: str | Path | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    path = Path(tasks_file) if tasks_file is not None else Path(settings.tasks_file)
    logger.debug("Bootstrap tasks_file=%s data_dir=%s", path, settings.data_dir)

    return AppState(
        settings=settings,
        tasks_file=path,
        llm=OpenAICompatLLMClient(settings),
    )
