# src/atlas_os/orchestrator/registry.py

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..core.results import HandlerResult, bad_request, error, not_found
from ..core.state import AppState
from ..llm.errors import LLMError, friendly_llm_error_message

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionRequest:
    """One decoded request body: `action`, `userId`, `sessionId` plus the rest."""

    action: str
    body: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    session_id: str | None = None

    @classmethod
    def from_body(cls, body: dict[str, Any] | None) -> ActionRequest:
        data = dict(body or {})
        user_id = data.get("userId")
        session_id = data.get("sessionId")
        return cls(
            action=str(data.get("action") or ""),
            body=data,
            user_id=str(user_id) if user_id else None,
            session_id=str(session_id) if session_id else None,
        )

    def get(self, key: str, default: Any = None) -> Any:
        value = self.body.get(key)
        return default if value is None else value

    def require(self, key: str) -> Any:
        value = self.body.get(key)
        if value is None or value == "":
            raise ValueError(f"{key} is required")
        return value

    def get_dict(self, key: str) -> dict[str, Any]:
        value = self.body.get(key)
        return dict(value) if isinstance(value, dict) else {}

    def get_int(self, key: str, default: int) -> int:
        value = self.body.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be an integer") from None


ActionHandler = Callable[[AppState, ActionRequest], HandlerResult]


def result_from_exception(exc: Exception) -> HandlerResult:
    """Map a handler failure to a JSON error: validation 400, lookup 404, LLM status, else 500."""
    if isinstance(exc, LLMError):
        return error(friendly_llm_error_message(exc), exc.status)
    if isinstance(exc, LookupError):
        return not_found(str(exc).strip("'\"") or "Not found")
    if isinstance(exc, ValueError):
        return bad_request(str(exc) or "Invalid request")
    return error(str(exc) or "Unknown error", 500)


class ActionRegistry:
    """Action name -> handler table behind one POST endpoint."""

    def __init__(self, name: str, *, default_action: str | None = None) -> None:
        self.name = name
        # used when the body carries no "action" (single-purpose endpoints)
        self.default_action = default_action
        self._handlers: dict[str, ActionHandler] = {}
        self._needs_user: dict[str, bool] = {}
        self._help: dict[str, str] = {}

    def register(
            self,
            action: str,
            handler: ActionHandler,
            help_text: str,
            *,
            requires_user: bool = True,
            aliases: list[str] | None = None,
    ) -> None:
        for key in [action, *(aliases or [])]:
            self._handlers[key] = handler
            self._needs_user[key] = requires_user
        self._help[action] = help_text

    def action(
            self,
            name: str,
            help_text: str,
            *,
            requires_user: bool = True,
            aliases: list[str] | None = None,
    ) -> Callable[[ActionHandler], ActionHandler]:
        def decorator(fn: ActionHandler) -> ActionHandler:
            self.register(name, fn, help_text, requires_user=requires_user, aliases=aliases)
            return fn

        return decorator

    @property
    def actions(self) -> list[str]:
        return sorted(self._help)

    def describe(self) -> dict[str, str]:
        return dict(self._help)

    def dispatch(self, state: AppState, request: ActionRequest) -> HandlerResult:
        action = request.action or self.default_action or ""
        handler = self._handlers.get(action)
        if handler is None:
            return bad_request("Unknown action")
        if self._needs_user[action] and not request.user_id:
            return bad_request("userId is required")

        logger.info("%s action=%s user=%s", self.name, action, request.user_id)
        try:
            return handler(state, request)
        except Exception as e:
            result = result_from_exception(e)
            if result.status >= 500:
                logger.exception("%s action=%s failed", self.name, action)
            else:
                logger.info("%s action=%s -> %d: %s", self.name, action, result.status, e)
            return result
