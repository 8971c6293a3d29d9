# src/taskpilot/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage
from ..errors import CollaboratorError

logger = logging.getLogger(__name__)

_BAD_MODELS: dict[str, float] = {}  # model -> retry_at (monotonic)


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException)):
        return True
    return exc.__class__.__name__ in {"Timeout", "ConnectTimeout", "ReadTimeout", "WriteTimeout"}


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK uses NotFoundError for HTTP 404 (unknown model)
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "API key is not set" in msg:
        return "LLM is not configured (missing API key). Set TASKPILOT_API_KEY (or GEMINI_API_KEY) in .env."
    if "model list is empty" in msg:
        return "LLM is not configured (no models). Set TASKPILOT_LLM_MODELS in .env."
    return msg


def _close_stream(stream: Any) -> None:
    """Best-effort close for streaming responses."""
    close = getattr(stream, "close", None)
    if callable(close):
        try:
            close()
        except Exception:
            logger.debug("Stream close failed.", exc_info=True)


class OpenAICompatLLMClient:
    """
    Streaming chat client for any OpenAI-compatible endpoint (Gemini, OpenRouter, OpenAI).

    Behavior:
    - Tries models in the order from settings (TASKPILOT_LLM_MODELS).
    - If a model doesn't produce a first content token within the first-token
      timeout, we abort and try the next model.
    - 404 (model not available) -> try next, and skip that model for an hour.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).

    Every failure surfaces as CollaboratorError.
    """

    def __init__(self, settings: Any) -> None:
        self._settings = settings
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        """
        Lazily create the client.

        No secrets required at construction time; automatic retries are disabled
        to allow quick fallback across models.
        """
        if self._client is not None:
            return self._client

        api_key = getattr(self._settings, "api_key", None)
        base_url = str(getattr(self._settings, "base_url", "") or "")

        if not api_key or not str(api_key).strip():
            raise CollaboratorError("LLM API key is not set. Set TASKPILOT_API_KEY in your .env.")
        if not base_url.strip():
            raise CollaboratorError("LLM base URL is not set. Set TASKPILOT_BASE_URL in your .env.")

        self._client = OpenAI(
            base_url=base_url,
            api_key=str(api_key),
            timeout=self._timeout(),
            max_retries=0,
        )
        return self._client

    def _timeout(self) -> httpx.Timeout:
        connect_s = float(getattr(self._settings, "connect_timeout", 10.0))
        read_s = float(getattr(self._settings, "read_timeout", 90.0))
        return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)

    def stream_chat(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Iterable[str]:
        models = [m.strip() for m in (getattr(self._settings, "llm_models", None) or []) if m and m.strip()]
        if not models:
            raise CollaboratorError("LLM model list is empty. Set TASKPILOT_LLM_MODELS in your .env.")

        client = self._get_client()
        first_token_timeout = float(getattr(self._settings, "first_token_timeout", 60.0))

        extra: dict[str, Any] = {}
        if temperature is not None:
            extra["temperature"] = temperature
        if max_tokens is not None:
            extra["max_tokens"] = max_tokens

        last_error: Exception | None = None
        now = time.monotonic()

        for model in models:
            retry_at = _BAD_MODELS.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout)
            t0 = time.monotonic()
            deadline = t0 + first_token_timeout

            stream = None
            used_any = False

            try:
                stream = client.chat.completions.create(
                    model=model,
                    stream=True,
                    messages=[{"role": "system", "content": system_prompt}, *messages],
                    timeout=self._timeout(),
                    **extra,
                )

                for chunk in stream:
                    # If the SDK yields chunks but no content, still enforce first-token deadline.
                    if not used_any and time.monotonic() > deadline:
                        last_error = TimeoutError(f"First token timeout on model: {model}")
                        logger.info("LLM: first token timeout on model=%s -> trying next", model)
                        break

                    content = None
                    if chunk.choices:
                        delta = getattr(chunk.choices[0], "delta", None)
                        content = getattr(delta, "content", None) if delta is not None else None

                    if content:
                        if not used_any:
                            logger.info("LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0)
                        used_any = True
                        yield content

                if used_any:
                    logger.debug("LLM: completed with model=%s", model)
                    return

                if last_error is None:
                    last_error = RuntimeError(f"Model returned no content: {model}")

            except Exception as e:
                last_error = e

                if _is_auth_error(e):
                    raise CollaboratorError(
                        "LLM authentication failed. Check your API key (TASKPILOT_API_KEY)."
                    ) from e

                if _is_not_found_error(e):
                    _BAD_MODELS[model] = time.monotonic() + 3600.0  # 1 hour
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            finally:
                if stream is not None:
                    _close_stream(stream)

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise CollaboratorError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise CollaboratorError("LLM network/timeout error. Try again later or change models.") from last_error
            raise CollaboratorError("All LLM models failed.") from last_error

        raise CollaboratorError("All LLM models failed.")
