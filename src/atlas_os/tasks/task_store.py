# src/atlas_os/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id
from .task_models import OPEN_STATUSES, OrchestrationMode, QueueTask, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)


class TaskNotFoundError(LookupError):
    pass


_UPDATABLE = frozenset(
    {
        "task_type",
        "task_title",
        "task_description",
        "task_priority",
        "status",
        "progress",
        "orchestration_mode",
        "input_data",
        "output_data",
        "assigned_agents",
        "agent_suggestions",
        "started_at",
        "completed_at",
        "due_date",
    }
)
_JSON_COLUMNS = frozenset({"input_data", "output_data", "assigned_agents", "agent_suggestions"})

_PRIORITY_ORDER_SQL = (
    "CASE task_priority WHEN 'critical' THEN 3 WHEN 'high' THEN 2 "
    "WHEN 'medium' THEN 1 ELSE 0 END"
)


class TaskStore(SQLiteStore):
    """
    SQLite agent task queue.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS agent_task_queue (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            task_type TEXT NOT NULL DEFAULT 'general',
            task_title TEXT NOT NULL,
            task_description TEXT,
            task_priority TEXT NOT NULL DEFAULT 'medium',
            status TEXT NOT NULL DEFAULT 'pending',
            progress INTEGER NOT NULL DEFAULT 0,
            orchestration_mode TEXT NOT NULL DEFAULT 'manual',
            input_data TEXT NOT NULL DEFAULT '{}',
            output_data TEXT NOT NULL DEFAULT '{}',
            assigned_agents TEXT NOT NULL DEFAULT '[]',
            agent_suggestions TEXT NOT NULL DEFAULT '[]',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL,
            started_at REAL,
            completed_at REAL,
            due_date REAL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_task_queue_user_status ON agent_task_queue(user_id, status)",
        "CREATE INDEX IF NOT EXISTS idx_task_queue_status_created ON agent_task_queue(status, created_at)",
    )

    def __init__(self, db_path: str | Path = "atlas.sqlite3") -> None:
        super().__init__(db_path)
        logger.info("TaskStore ready db=%s total=%s", self._db_path, self.count_tasks())

    def _row_to_task(self, row: sqlite3.Row) -> QueueTask:
        return QueueTask(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            task_type=str(row["task_type"] or "general"),
            task_title=str(row["task_title"] or ""),
            task_description=row["task_description"],
            task_priority=TaskPriority.from_db(row["task_priority"]),
            status=TaskStatus.from_db(row["status"]),
            progress=int(row["progress"] or 0),
            orchestration_mode=OrchestrationMode.from_db(row["orchestration_mode"]),
            input_data=self._json_dict(row["input_data"]),
            output_data=self._json_dict(row["output_data"]),
            assigned_agents=[str(a) for a in self._json_list(row["assigned_agents"])],
            agent_suggestions=[s for s in self._json_list(row["agent_suggestions"]) if isinstance(s, dict)],
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            due_date=row["due_date"],
        )

    # ---- public API ----

    def count_tasks(self, *, user_id: str | None = None) -> int:
        if user_id:
            row = self._fetch_one("SELECT COUNT(*) FROM agent_task_queue WHERE user_id = ?", (user_id,))
        else:
            row = self._fetch_one("SELECT COUNT(*) FROM agent_task_queue")
        return int(row[0]) if row else 0

    def add_task(
        self,
        *,
        user_id: str,
        task_title: str,
        task_type: str = "general",
        task_description: str | None = None,
        task_priority: TaskPriority | str = TaskPriority.MEDIUM,
        status: TaskStatus = TaskStatus.PENDING,
        progress: int = 0,
        orchestration_mode: OrchestrationMode | str = OrchestrationMode.MANUAL,
        input_data: dict[str, Any] | None = None,
        assigned_agents: list[str] | None = None,
        agent_suggestions: list[dict[str, Any]] | None = None,
        due_date: float | None = None,
    ) -> QueueTask:
        if not user_id:
            raise ValueError("user_id is required")
        if not task_title or not task_title.strip():
            raise ValueError("task_title is required")

        now = time.time()
        task_id = new_id()
        priority = TaskPriority.from_db(str(task_priority))
        mode = OrchestrationMode.from_db(str(orchestration_mode))

        self._execute(
            """
            INSERT INTO agent_task_queue(
                id, user_id, task_type, task_title, task_description, task_priority,
                status, progress, orchestration_mode,
                input_data, output_data, assigned_agents, agent_suggestions,
                created_at, updated_at, due_date
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, '{}', ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                user_id,
                (task_type or "general").strip(),
                task_title.strip(),
                task_description,
                priority.value,
                status.value,
                max(0, min(100, int(progress))),
                mode.value,
                self._json_dump(input_data or {}),
                self._json_dump(list(assigned_agents or [])),
                self._json_dump(list(agent_suggestions or [])),
                now,
                now,
                due_date,
            ),
        )
        logger.debug("Task added id=%s user=%s status=%s", task_id, user_id, status.value)
        return self.require_task(task_id)

    def get_task(self, task_id: str, *, user_id: str | None = None) -> QueueTask | None:
        if user_id:
            row = self._fetch_one(
                "SELECT * FROM agent_task_queue WHERE id = ? AND user_id = ?", (task_id, user_id)
            )
        else:
            row = self._fetch_one("SELECT * FROM agent_task_queue WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    def require_task(self, task_id: str, *, user_id: str | None = None) -> QueueTask:
        task = self.get_task(task_id, user_id=user_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def list_user_tasks(self, user_id: str, *, limit: int = 20) -> list[QueueTask]:
        rows = self._fetch_all(
            "SELECT * FROM agent_task_queue WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, int(limit)),
        )
        return [self._row_to_task(r) for r in rows]

    def list_open_tasks(
        self,
        *,
        user_id: str | None = None,
        limit: int = 20,
        by_priority: bool = False,
    ) -> list[QueueTask]:
        """
        Open = pending or in_progress.

        by_priority=True orders critical > high > medium > low, oldest first within a rank.
        """
        placeholders = ",".join("?" for _ in OPEN_STATUSES)
        sql = f"SELECT * FROM agent_task_queue WHERE status IN ({placeholders})"
        params: list[Any] = [s.value for s in OPEN_STATUSES]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        if by_priority:
            sql += f" ORDER BY {_PRIORITY_ORDER_SQL} DESC, created_at ASC, rowid ASC"
        else:
            sql += " ORDER BY created_at ASC, rowid ASC"
        sql += " LIMIT ?"
        params.append(int(limit))
        return [self._row_to_task(r) for r in self._fetch_all(sql, params)]

    def open_task_titles(self, user_id: str) -> set[str]:
        """Lower-cased titles of tasks still in flight (used for de-duplication)."""
        rows = self._fetch_all(
            """
            SELECT task_title FROM agent_task_queue
            WHERE user_id = ? AND status IN ('pending','in_progress','awaiting_approval')
            """,
            (user_id,),
        )
        return {str(r["task_title"]).strip().lower() for r in rows}

    def list_assigned_tasks(self, user_id: str, *, limit: int = 20) -> list[QueueTask]:
        rows = self._fetch_all(
            """
            SELECT * FROM agent_task_queue
            WHERE user_id = ? AND assigned_agents != '[]'
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (user_id, int(limit)),
        )
        return [self._row_to_task(r) for r in rows]

    def update_task(self, task_id: str, *, user_id: str | None = None, **fields: Any) -> bool:
        """Update whitelisted columns. Returns False when no row matched."""
        if not fields:
            return False
        for key in ("status", "task_priority", "orchestration_mode"):
            if key in fields and fields[key] is not None:
                fields[key] = str(fields[key])
        if "progress" in fields and fields["progress"] is not None:
            fields["progress"] = max(0, min(100, int(fields["progress"])))

        sets, params = self._build_update(
            "agent_task_queue", fields, allowed=_UPDATABLE, json_fields=_JSON_COLUMNS
        )
        sets.append("updated_at = ?")
        params.append(time.time())

        sql = f"UPDATE agent_task_queue SET {', '.join(sets)} WHERE id = ?"
        params.append(task_id)
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        return self._execute(sql, params) == 1

    def delete_task(self, task_id: str, *, user_id: str) -> bool:
        n = self._execute("DELETE FROM agent_task_queue WHERE id = ? AND user_id = ?", (task_id, user_id))
        if n:
            logger.debug("Task deleted id=%s user=%s", task_id, user_id)
        return n == 1
