# src/taskpilot/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The task engine depends on Protocols instead of concrete implementations,
so the LLM provider is swappable and tests can use deterministic fakes.
"""

from collections.abc import Iterable
from typing import Protocol

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Streaming chat completion client (OpenAI-compatible)."""

    def stream_chat(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Iterable[str]: ...
