# src/atlas_os/notifications/notification_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Notification:
    id: str
    user_id: str
    notification_type: str
    title: str
    message: str
    priority: str
    is_read: bool
    is_dismissed: bool
    created_at: float
    source_agent_name: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "is_read": self.is_read,
            "is_dismissed": self.is_dismissed,
            "created_at": self.created_at,
            "source_agent_name": self.source_agent_name,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "metadata": self.metadata,
        }


class NotificationStore(SQLiteStore):
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS agent_notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            notification_type TEXT NOT NULL DEFAULT 'info',
            title TEXT NOT NULL,
            message TEXT NOT NULL DEFAULT '',
            priority TEXT NOT NULL DEFAULT 'normal',
            is_read INTEGER NOT NULL DEFAULT 0,
            is_dismissed INTEGER NOT NULL DEFAULT 0,
            source_agent_name TEXT,
            related_entity_type TEXT,
            related_entity_id TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_notifications_user ON agent_notifications(user_id, is_dismissed, created_at)",
    )

    def _row_to_notification(self, row: sqlite3.Row) -> Notification:
        return Notification(
            id=row["id"],
            user_id=row["user_id"],
            notification_type=row["notification_type"],
            title=row["title"],
            message=row["message"],
            priority=row["priority"],
            is_read=bool(row["is_read"]),
            is_dismissed=bool(row["is_dismissed"]),
            created_at=float(row["created_at"]),
            source_agent_name=row["source_agent_name"],
            related_entity_type=row["related_entity_type"],
            related_entity_id=row["related_entity_id"],
            metadata=self._json_dict(row["metadata"]),
        )

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
    ) -> Notification:
        if not user_id:
            raise ValueError("user_id is required")
        if not title or not title.strip():
            raise ValueError("title is required")

        notification_id = new_id()
        now = time.time()
        self._execute(
            """
            INSERT INTO agent_notifications(
                id, user_id, notification_type, title, message, priority,
                source_agent_name, related_entity_type, related_entity_id, metadata, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification_id,
                user_id,
                notification_type,
                title.strip(),
                message or "",
                priority,
                source_agent_name,
                related_entity_type,
                related_entity_id,
                self._json_dump(metadata or {}),
                now,
            ),
        )
        logger.debug("Notification sent id=%s user=%s type=%s", notification_id, user_id, notification_type)
        return Notification(
            id=notification_id,
            user_id=user_id,
            notification_type=notification_type,
            title=title.strip(),
            message=message or "",
            priority=priority,
            is_read=False,
            is_dismissed=False,
            created_at=now,
            source_agent_name=source_agent_name,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            metadata=dict(metadata or {}),
        )

    def get_notifications(self, user_id: str, *, limit: int = 50) -> list[Notification]:
        rows = self._fetch_all(
            """
            SELECT * FROM agent_notifications
            WHERE user_id = ? AND is_dismissed = 0
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (user_id, int(limit)),
        )
        return [self._row_to_notification(r) for r in rows]

    def dismiss_notification(self, notification_id: str, *, user_id: str) -> bool:
        return self._execute(
            "UPDATE agent_notifications SET is_dismissed = 1 WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        ) == 1

    def mark_read(self, notification_id: str, *, user_id: str) -> bool:
        return self._execute(
            "UPDATE agent_notifications SET is_read = 1 WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        ) == 1
