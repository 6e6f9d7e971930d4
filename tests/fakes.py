# tests/fakes.py

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from atlas_os.core.ports import ChatMessage
from atlas_os.llm.errors import LLMNotConfiguredError


@dataclass(slots=True)
class LLMCall:
    messages: list[ChatMessage]
    system_prompt: str | None
    model: str | None
    temperature: float | None
    json_mode: bool

    @property
    def prompt(self) -> str:
        return self.messages[-1]["content"] if self.messages else ""


class FakeLLMClient:
    """
    Deterministic LLM client for unit tests.

    - Captures calls for assertions
    - Replies from a queue (strings, or exceptions to raise), then `default`
    - Embeddings come from `embeddings` (text -> vector), or raise
    """

    def __init__(self, *replies: str | Exception, default: str = "ok") -> None:
        self.replies: list[str | Exception] = list(replies)
        self.default = default
        self.calls: list[LLMCall] = []
        self.embeddings: dict[str, list[float]] | None = None

    def queue(self, *replies: str | Exception) -> None:
        self.replies.extend(replies)

    def complete(
            self,
            messages: list[ChatMessage],
            *,
            system_prompt: str | None = None,
            model: str | None = None,
            temperature: float | None = None,
            json_mode: bool = False,
    ) -> str:
        self.calls.append(LLMCall(list(messages), system_prompt, model, temperature, json_mode))
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    def embed(self, text: str) -> list[float]:
        if self.embeddings is None:
            raise LLMNotConfiguredError("no embeddings in tests")
        return self.embeddings.get(text, [0.0, 0.0, 1.0])


@dataclass(slots=True)
class PostedRequest:
    url: str
    json: dict[str, Any]
    headers: dict[str, str]
    timeout: float


@dataclass(slots=True)
class FakeHttpPoster:
    """Records POSTs; `status_for` decides the answer (or raises)."""

    status_for: Callable[[str], int] = lambda _url: 200
    posted: list[PostedRequest] = field(default_factory=list)

    def post(
            self,
            url: str,
            *,
            json: dict[str, Any],
            headers: dict[str, str] | None = None,
            timeout: float = 10.0,
    ) -> int:
        self.posted.append(PostedRequest(url=url, json=json, headers=dict(headers or {}), timeout=timeout))
        return self.status_for(url)
