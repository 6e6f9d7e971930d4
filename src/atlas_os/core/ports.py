# src/atlas_os/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engines.

Engines depend on Protocols instead of concrete implementations, so the LLM
gateway, HTTP transport and storage stay swappable and tests can use fakes.
"""

from typing import Any, Protocol

ChatMessage = dict[str, str]
# OpenAI-style chat messages: {"role": "...", "content": "..."}.


class LLMClient(Protocol):
    """Chat completion + embedding client (OpenAI-compatible gateway)."""

    def complete(
            self,
            messages: list[ChatMessage],
            *,
            system_prompt: str | None = None,
            model: str | None = None,
            temperature: float | None = None,
            json_mode: bool = False,
    ) -> str: ...

    def embed(self, text: str) -> list[float]: ...


class HttpPoster(Protocol):
    """Outbound JSON POST (webhooks). Returns the HTTP status code."""

    def post(
            self,
            url: str,
            *,
            json: dict[str, Any],
            headers: dict[str, str] | None = None,
            timeout: float = 10.0,
    ) -> int: ...


class TaskRepo(Protocol):
    # Processor / sweeper API
    def get_task(self, task_id: str, *, user_id: str | None = None) -> Any | None: ...

    def list_open_tasks(
            self,
            *,
            user_id: str | None = None,
            limit: int = 20,
            by_priority: bool = False,
    ) -> list[Any]: ...

    def update_task(self, task_id: str, *, user_id: str | None = None, **fields: Any) -> bool: ...


class NotificationSink(Protocol):
    def send_notification(
            self,
            *,
            user_id: str,
            title: str,
            message: str,
            notification_type: str = "info",
            priority: str = "normal",
            source_agent_name: str | None = None,
            related_entity_type: str | None = None,
            related_entity_id: str | None = None,
            metadata: dict[str, Any] | None = None,
    ) -> Any: ...
