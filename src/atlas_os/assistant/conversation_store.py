# src/atlas_os/assistant/conversation_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)

HISTORY_HEADER = "=== Recent Conversation History ==="
HISTORY_FOOTER = "=== End History ==="


@dataclass(slots=True)
class ConversationMessage:
    id: str
    user_id: str
    role: str
    content: str
    created_at: float
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def speaker(self) -> str:
        return "User" if self.role == "user" else "Atlas"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at,
            "session_id": self.session_id,
        }


def render_transcript(messages: list[ConversationMessage]) -> str:
    return "\n".join(f"{m.speaker}: {m.content}" for m in messages)


class ConversationStore(SQLiteStore):
    """
    Two logs per user:
    - atlas_conversations: chat turns with the assistant (optionally per session)
    - user_memory_messages: the long-term memory feed tasks are extracted from
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS atlas_conversations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            session_id TEXT,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_conversations_user ON atlas_conversations(user_id, created_at)",
        """
        CREATE TABLE IF NOT EXISTS user_memory_messages (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_memory_messages_user ON user_memory_messages(user_id, created_at)",
    )

    def _row_to_message(self, row: sqlite3.Row) -> ConversationMessage:
        keys = row.keys()
        return ConversationMessage(
            id=row["id"],
            user_id=row["user_id"],
            role=row["role"],
            content=row["content"],
            created_at=float(row["created_at"]),
            session_id=row["session_id"] if "session_id" in keys else None,
            metadata=self._json_dict(row["metadata"]),
        )

    # ---- conversation turns ----

    def add_message(
            self,
            *,
            user_id: str,
            role: str,
            content: str,
            session_id: str | None = None,
            metadata: dict[str, Any] | None = None,
            created_at: float | None = None,
    ) -> ConversationMessage:
        message_id = new_id()
        now = time.time() if created_at is None else created_at
        self._execute(
            """
            INSERT INTO atlas_conversations(id, user_id, session_id, role, content, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (message_id, user_id, session_id, role, content, self._json_dump(metadata or {}), now),
        )
        return ConversationMessage(
            id=message_id,
            user_id=user_id,
            session_id=session_id,
            role=role,
            content=content,
            metadata=dict(metadata or {}),
            created_at=now,
        )

    def get_history(
            self,
            user_id: str,
            *,
            session_id: str | None = None,
            limit: int = 50,
    ) -> list[ConversationMessage]:
        """Newest first."""
        sql = "SELECT * FROM atlas_conversations WHERE user_id = ?"
        params: list[Any] = [user_id]
        if session_id:
            sql += " AND session_id = ?"
            params.append(session_id)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(int(limit))
        return [self._row_to_message(r) for r in self._fetch_all(sql, params)]

    def conversation_context(self, user_id: str, *, session_id: str | None = None, limit: int = 20) -> str:
        """Latest `limit` turns oldest first, framed for a prompt; "" without history."""
        try:
            history = self.get_history(user_id, session_id=session_id, limit=limit)
        except sqlite3.Error as e:
            logger.error("Error fetching conversation context: %s", e)
            return ""
        if not history:
            return ""
        history.reverse()
        return f"\n\n{HISTORY_HEADER}\n{render_transcript(history)}\n{HISTORY_FOOTER}\n"

    # ---- memory feed ----

    def add_memory_message(
            self,
            *,
            user_id: str,
            role: str,
            content: str,
            metadata: dict[str, Any] | None = None,
            created_at: float | None = None,
    ) -> str:
        message_id = new_id()
        self._execute(
            """
            INSERT INTO user_memory_messages(id, user_id, role, content, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message_id,
                user_id,
                role,
                content,
                self._json_dump(metadata or {}),
                time.time() if created_at is None else created_at,
            ),
        )
        return message_id

    def recent_memory_messages(self, user_id: str, *, limit: int = 50) -> list[ConversationMessage]:
        """Latest `limit` memory messages, oldest first."""
        rows = self._fetch_all(
            """
            SELECT * FROM user_memory_messages
            WHERE user_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (user_id, int(limit)),
        )
        messages = [self._row_to_message(r) for r in rows]
        messages.reverse()
        return messages
