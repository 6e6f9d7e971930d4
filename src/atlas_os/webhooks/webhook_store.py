# src/atlas_os/webhooks/webhook_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)


class WebhookNotFoundError(LookupError):
    def __init__(self, message: str = "Webhook not found") -> None:
        super().__init__(message)


class WebhookProvider(StrEnum):
    ZAPIER = "zapier"
    MAKE = "make"
    N8N = "n8n"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, raw: str | None) -> WebhookProvider:
        if not raw:
            return cls.ZAPIER
        try:
            return cls(raw.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown webhook provider: {raw}") from None


TRIGGER_TYPES = (
    "email_received",
    "email_sent",
    "contact_added",
    "campaign_completed",
    "tracking_event",
    "task_completed",
    "custom",
)


@dataclass(slots=True)
class AutomationWebhook:
    id: str
    user_id: str
    name: str
    webhook_url: str
    provider: WebhookProvider
    trigger_type: str
    is_active: bool
    trigger_count: int
    error_count: int
    created_at: float
    updated_at: float
    description: str | None = None
    trigger_conditions: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    last_triggered_at: float | None = None
    last_error: str | None = None

    def matches(self, payload: dict[str, Any]) -> bool:
        """Every condition key must equal the payload value."""
        return all(payload.get(k) == v for k, v in self.trigger_conditions.items())

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "webhook_url": self.webhook_url,
            "provider": self.provider.value,
            "trigger_type": self.trigger_type,
            "trigger_conditions": self.trigger_conditions,
            "is_active": self.is_active,
            "last_triggered_at": self.last_triggered_at,
            "trigger_count": self.trigger_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "headers": self.headers,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


_UPDATABLE = frozenset(
    {
        "name",
        "description",
        "webhook_url",
        "provider",
        "trigger_type",
        "trigger_conditions",
        "is_active",
        "headers",
        "metadata",
    }
)
_JSON_COLUMNS = frozenset({"trigger_conditions", "headers", "metadata"})


def _check_url(url: str | None) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        raise ValueError("webhook_url must be an http(s) URL")
    return url


class WebhookStore(SQLiteStore):
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS automation_webhooks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            webhook_url TEXT NOT NULL,
            provider TEXT NOT NULL DEFAULT 'zapier',
            trigger_type TEXT NOT NULL DEFAULT 'custom',
            trigger_conditions TEXT NOT NULL DEFAULT '{}',
            is_active INTEGER NOT NULL DEFAULT 1,
            last_triggered_at REAL,
            trigger_count INTEGER NOT NULL DEFAULT 0,
            error_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            headers TEXT NOT NULL DEFAULT '{}',
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_webhooks_user_trigger ON automation_webhooks(user_id, trigger_type, is_active)",
    )

    def _row_to_webhook(self, row: sqlite3.Row) -> AutomationWebhook:
        return AutomationWebhook(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            description=row["description"],
            webhook_url=row["webhook_url"],
            provider=WebhookProvider.parse(row["provider"]),
            trigger_type=row["trigger_type"],
            trigger_conditions=self._json_dict(row["trigger_conditions"]),
            is_active=bool(row["is_active"]),
            last_triggered_at=row["last_triggered_at"],
            trigger_count=int(row["trigger_count"]),
            error_count=int(row["error_count"]),
            last_error=row["last_error"],
            headers={str(k): str(v) for k, v in self._json_dict(row["headers"]).items()},
            metadata=self._json_dict(row["metadata"]),
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    def create_webhook(
            self,
            *,
            user_id: str,
            name: str,
            webhook_url: str,
            trigger_type: str = "custom",
            description: str | None = None,
            provider: str | None = None,
            trigger_conditions: dict[str, Any] | None = None,
            headers: dict[str, str] | None = None,
            metadata: dict[str, Any] | None = None,
    ) -> AutomationWebhook:
        if not name or not name.strip():
            raise ValueError("name is required")
        webhook_id = new_id()
        now = time.time()
        self._execute(
            """
            INSERT INTO automation_webhooks(
                id, user_id, name, description, webhook_url, provider, trigger_type,
                trigger_conditions, headers, metadata, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                webhook_id,
                user_id,
                name.strip(),
                description,
                _check_url(webhook_url),
                WebhookProvider.parse(provider).value,
                trigger_type or "custom",
                self._json_dump(trigger_conditions or {}),
                self._json_dump(headers or {}),
                self._json_dump(metadata or {}),
                now,
                now,
            ),
        )
        logger.info("Webhook created id=%s user=%s trigger=%s", webhook_id, user_id, trigger_type)
        return self.require_webhook(webhook_id)

    def get_webhook(self, webhook_id: str, *, user_id: str | None = None) -> AutomationWebhook | None:
        sql = "SELECT * FROM automation_webhooks WHERE id = ?"
        params: list[Any] = [webhook_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._fetch_one(sql, params)
        return self._row_to_webhook(row) if row else None

    def require_webhook(self, webhook_id: str, *, user_id: str | None = None) -> AutomationWebhook:
        webhook = self.get_webhook(webhook_id, user_id=user_id)
        if webhook is None:
            raise WebhookNotFoundError()
        return webhook

    def list_webhooks(self, user_id: str) -> list[AutomationWebhook]:
        rows = self._fetch_all(
            "SELECT * FROM automation_webhooks WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [self._row_to_webhook(r) for r in rows]

    def active_for_trigger(self, user_id: str, trigger_type: str) -> list[AutomationWebhook]:
        rows = self._fetch_all(
            """
            SELECT * FROM automation_webhooks
            WHERE user_id = ? AND trigger_type = ? AND is_active = 1
            ORDER BY created_at ASC
            """,
            (user_id, trigger_type),
        )
        return [self._row_to_webhook(r) for r in rows]

    def update_webhook(self, webhook_id: str, *, user_id: str, **fields: Any) -> bool:
        if not fields:
            return False
        if "webhook_url" in fields:
            fields["webhook_url"] = _check_url(fields["webhook_url"])
        if "provider" in fields:
            fields["provider"] = WebhookProvider.parse(fields["provider"]).value
        sets, params = self._build_update(
            "automation_webhooks", fields, allowed=_UPDATABLE, json_fields=_JSON_COLUMNS
        )
        sets.append("updated_at = ?")
        params += [time.time(), webhook_id, user_id]
        sql = f"UPDATE automation_webhooks SET {', '.join(sets)} WHERE id = ? AND user_id = ?"
        return self._execute(sql, params) == 1

    def toggle_webhook(self, webhook_id: str, *, user_id: str) -> AutomationWebhook:
        webhook = self.require_webhook(webhook_id, user_id=user_id)
        self.update_webhook(webhook_id, user_id=user_id, is_active=not webhook.is_active)
        return self.require_webhook(webhook_id)

    def delete_webhook(self, webhook_id: str, *, user_id: str) -> bool:
        return self._execute(
            "DELETE FROM automation_webhooks WHERE id = ? AND user_id = ?", (webhook_id, user_id)
        ) == 1

    def record_success(self, webhook_id: str) -> None:
        now = time.time()
        self._execute(
            """
            UPDATE automation_webhooks
            SET trigger_count = trigger_count + 1, last_triggered_at = ?, last_error = NULL, updated_at = ?
            WHERE id = ?
            """,
            (now, now, webhook_id),
        )

    def record_failure(self, webhook_id: str, error: str) -> None:
        self._execute(
            """
            UPDATE automation_webhooks
            SET error_count = error_count + 1, last_error = ?, updated_at = ?
            WHERE id = ?
            """,
            (error, time.time(), webhook_id),
        )
