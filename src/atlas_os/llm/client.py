# src/atlas_os/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage
from .errors import (
    CREDITS_MESSAGE,
    RATE_LIMIT_MESSAGE,
    UNAVAILABLE_MESSAGE,
    LLMAuthError,
    LLMCreditsError,
    LLMNotConfiguredError,
    LLMRateLimitError,
    LLMUnavailableError,
)

logger = logging.getLogger(__name__)

_BAD_MODEL_TTL_SECONDS = 3600.0


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    return int(status) if isinstance(status, int) else None


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, httpx.TransportError)):
        return True
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "ConnectTimeout",
        "ReadTimeout",
        "ConnectError",
    }


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


class GatewayLLMClient:
    """
    Chat completions through the OpenAI-compatible AI gateway.

    Behavior per call:
    - tries the requested model, else the configured models in order
    - 5xx / network errors -> retried max_retries times, linear backoff
    - 404 (model not available) -> model is parked for an hour, next model
    - 429 / 402 / 401 -> fail fast with a typed error
    - nothing worked -> LLMUnavailableError
    """

    def __init__(
            self,
            settings: Any,
            *,
            client: Any | None = None,
            sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._sleep = sleep
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

        self._models: List[str] = [m.strip() for m in (getattr(settings, "llm_models", []) or []) if m.strip()]
        self._headers: Dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        self._max_retries = max(0, int(getattr(settings, "llm_max_retries", 2)))
        self._retry_delay = float(getattr(settings, "llm_retry_delay_seconds", 1.0))
        self._embedding_model = str(getattr(settings, "llm_embedding_model", "text-embedding-3-small"))

        if client is not None:
            self._client = client
            return

        api_key = getattr(settings, "llm_api_key", None)
        base_url = str(getattr(settings, "llm_base_url", "") or "")
        if not api_key or not str(api_key).strip():
            raise LLMNotConfiguredError("LLM API key is not set. Set ATLAS_LLM_API_KEY in your .env.")
        if not base_url.strip():
            raise LLMNotConfiguredError("LLM base URL is not set. Set ATLAS_LLM_BASE_URL in your .env.")

        timeout = _make_timeout(
            float(getattr(settings, "llm_connect_timeout_seconds", 5.0)),
            float(getattr(settings, "llm_read_timeout_seconds", 60.0)),
        )
        # SDK retries are disabled; retry policy lives in complete().
        self._client = OpenAI(base_url=base_url, api_key=str(api_key), timeout=timeout, max_retries=0)

    def _candidate_models(self, model: str | None) -> list[str]:
        if model:
            return [model]
        now = time.monotonic()
        out = [m for m in self._models if self._bad_models.get(m, 0.0) <= now]
        if not out:
            raise LLMNotConfiguredError("LLM model list is empty. Set ATLAS_LLM_MODELS in your .env.")
        return out

    def complete(
            self,
            messages: list[ChatMessage],
            *,
            system_prompt: str | None = None,
            model: str | None = None,
            temperature: float | None = None,
            json_mode: bool = False,
    ) -> str:
        payload: list[ChatMessage] = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload.extend(messages)

        kwargs: dict[str, Any] = {"messages": payload}
        if self._headers:
            kwargs["extra_headers"] = self._headers
        if temperature is not None:
            kwargs["temperature"] = float(temperature)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        last_error: Optional[Exception] = None

        for candidate in self._candidate_models(model):
            for attempt in range(self._max_retries + 1):
                try:
                    logger.debug("LLM: model=%s attempt=%d", candidate, attempt + 1)
                    resp = self._client.chat.completions.create(model=candidate, **kwargs)
                    return _first_content(resp)
                except Exception as e:
                    last_error = e
                    status = _status_of(e)

                    if status == 429:
                        raise LLMRateLimitError(RATE_LIMIT_MESSAGE) from e
                    if status == 402:
                        raise LLMCreditsError(CREDITS_MESSAGE) from e
                    if status in (401, 403):
                        raise LLMAuthError("LLM authentication failed. Check ATLAS_LLM_API_KEY.") from e

                    if status == 404:
                        self._bad_models[candidate] = time.monotonic() + _BAD_MODEL_TTL_SECONDS
                        logger.info("LLM: model not available (404): %s", candidate)
                        break

                    retryable = (status is not None and status >= 500) or _is_connection_error(e)
                    if not retryable:
                        logger.info("LLM: error on model=%s (%s), trying next", candidate, e.__class__.__name__)
                        break

                    if attempt < self._max_retries:
                        delay = self._retry_delay * (attempt + 1)
                        logger.info(
                            "LLM: transient error on model=%s (%s), retry in %.1fs",
                            candidate,
                            e.__class__.__name__,
                            delay,
                        )
                        self._sleep(delay)

        logger.error("LLM: all models failed (last=%s)", last_error.__class__.__name__ if last_error else None)
        raise LLMUnavailableError(UNAVAILABLE_MESSAGE) from last_error

    def embed(self, text: str) -> list[float]:
        try:
            resp = self._client.embeddings.create(model=self._embedding_model, input=text)
        except Exception as e:
            status = _status_of(e)
            if status == 429:
                raise LLMRateLimitError(RATE_LIMIT_MESSAGE) from e
            if status == 402:
                raise LLMCreditsError(CREDITS_MESSAGE) from e
            raise LLMUnavailableError(UNAVAILABLE_MESSAGE) from e
        data = getattr(resp, "data", None) or []
        if not data:
            raise LLMUnavailableError("Embedding response was empty.")
        return [float(x) for x in data[0].embedding]


def _first_content(resp: Any) -> str:
    try:
        content = resp.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        return ""
    return content or ""
