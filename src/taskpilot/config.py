# src/taskpilot/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (the API key is only checked when an LLM call is made).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKPILOT"

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODELS = ["gemini-2.0-flash", "gemini-1.5-flash"]


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local paths ----
    data_dir: Path
    tasks_file: Path
    tasks_dir: Path

    # ---- LLM (OpenAI-compatible endpoint) ----
    api_key: str | None
    base_url: str
    llm_models: list[str]
    save_responses: bool

    # ---- LLM timeouts ----
    first_token_timeout: float
    read_timeout: float
    connect_timeout: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "taskpilot")
        log_level = _env(_k("LOG_LEVEL"), "WARNING")

        data_dir = _env_path(_k("DATA_DIR"), Path(".taskpilot"))
        tasks_file = _env_path(_k("TASKS_FILE"), Path("tasks.json"))
        tasks_dir = _env_path(_k("TASKS_DIR"), Path("tasks"))

        # Accept the provider-specific names too, so an existing .env keeps working.
        api_key = _first_env(_k("API_KEY"), "GEMINI_API_KEY", "OPENAI_API_KEY", default=None)
        base_url = _first_env(_k("BASE_URL"), "GEMINI_API_ENDPOINT", default=DEFAULT_BASE_URL) or DEFAULT_BASE_URL
        llm_models = _env_list(_k("LLM_MODELS"), DEFAULT_MODELS)
        save_responses = _env_bool(_k("SAVE_RESPONSES"), True)

        first_token = _env_float(_k("LLM_FIRST_TOKEN_TIMEOUT_SECONDS"), 60.0)
        read_timeout = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 90.0)
        connect_timeout = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 10.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_file=tasks_file,
            tasks_dir=tasks_dir,
            api_key=api_key,
            base_url=base_url,
            llm_models=llm_models,
            save_responses=save_responses,
            first_token_timeout=first_token,
            # keep read >= first_token as a sane baseline
            read_timeout=max(read_timeout, first_token),
            connect_timeout=connect_timeout,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
