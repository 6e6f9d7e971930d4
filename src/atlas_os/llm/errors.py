# src/atlas_os/llm/errors.py

from __future__ import annotations


class LLMError(RuntimeError):
    """Base error for the LLM gateway. `status` is the HTTP status to surface."""

    status: int = 500


class LLMNotConfiguredError(LLMError):
    status = 500


class LLMRateLimitError(LLMError):
    status = 429


class LLMCreditsError(LLMError):
    status = 402


class LLMAuthError(LLMError):
    status = 401


class LLMUnavailableError(LLMError):
    status = 500


RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
CREDITS_MESSAGE = "Usage credits exhausted. Please add credits."
UNAVAILABLE_MESSAGE = "AI gateway temporarily unavailable. Please try again."


def friendly_llm_error_message(err: Exception) -> str:
    if isinstance(err, LLMRateLimitError):
        return RATE_LIMIT_MESSAGE
    if isinstance(err, LLMCreditsError):
        return CREDITS_MESSAGE
    if isinstance(err, LLMAuthError):
        return "AI gateway rejected the API key. Check ATLAS_LLM_API_KEY."
    if isinstance(err, LLMNotConfiguredError):
        return "AI service not configured. Set ATLAS_LLM_API_KEY in .env."
    if isinstance(err, LLMUnavailableError):
        return UNAVAILABLE_MESSAGE
    return str(err).strip() or "LLM error."
