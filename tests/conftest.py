# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpilot.core.state import AppState
from taskpilot.tasks.task_store import TaskStore

from .fakes import FakeLLMClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the CLI.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment and any .env file.
    """
    return SimpleNamespace(
        app_name="taskpilot-test",
        log_level="WARNING",
        # Paths (tmp per test run)
        data_dir=tmp_path / ".taskpilot",
        tasks_file=tmp_path / "tasks.json",
        tasks_dir=tmp_path / "tasks",
        # LLM
        api_key=None,
        base_url="http://127.0.0.1:9/v1",
        llm_models=["fake-model"],
        first_token_timeout=1.0,
        read_timeout=1.0,
        connect_timeout=1.0,
        # Features
        save_responses=True,
    )


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture()
def state(settings: SimpleNamespace, llm: FakeLLMClient) -> AppState:
    """
    AppState wired with a fake LLM and a real (empty) task file.

    NOTE: the JSON store is real here because the load -> mutate -> save
    cycle is part of what the command tests check.
    """
    TaskStore.create(settings.tasks_file)
    return AppState(settings=settings, tasks_file=settings.tasks_file, llm=llm)
