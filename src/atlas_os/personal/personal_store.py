# src/atlas_os/personal/personal_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)

ITEM_TYPES = ("task", "note", "reminder", "goal", "habit")


class PersonalItemNotFoundError(LookupError):
    def __init__(self, message: str = "Item not found") -> None:
        super().__init__(message)


class GoalNotFoundError(LookupError):
    def __init__(self, message: str = "Goal not found") -> None:
        super().__init__(message)


class HabitNotFoundError(LookupError):
    def __init__(self, message: str = "Habit not found") -> None:
        super().__init__(message)


@dataclass(slots=True)
class PersonalItem:
    id: str
    user_id: str
    item_type: str
    title: str
    status: str
    priority: str
    created_at: float
    updated_at: float
    content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    # ISO date (YYYY-MM-DD) or full ISO timestamp; compared on its date prefix.
    due_date: str | None = None
    reminder_at: str | None = None
    recurrence_rule: str | None = None
    completed_at: float | None = None

    @property
    def due_day(self) -> str | None:
        return self.due_date[:10] if self.due_date else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "item_type": self.item_type,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "tags": self.tags,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date,
            "reminder_at": self.reminder_at,
            "recurrence_rule": self.recurrence_rule,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class PersonalGoal:
    id: str
    user_id: str
    title: str
    category: str
    current_value: float
    status: str
    created_at: float
    description: str | None = None
    target_value: float | None = None
    unit: str | None = None
    target_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "unit": self.unit,
            "target_date": self.target_date,
            "status": self.status,
            "created_at": self.created_at,
        }


@dataclass(slots=True)
class PersonalHabit:
    id: str
    user_id: str
    name: str
    frequency: str
    target_count: int
    current_streak: int
    longest_streak: int
    is_active: bool
    created_at: float
    description: str | None = None
    last_completed_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "frequency": self.frequency,
            "target_count": self.target_count,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "is_active": self.is_active,
            "last_completed_at": self.last_completed_at,
            "created_at": self.created_at,
        }


_ITEM_UPDATABLE = frozenset(
    {
        "item_type",
        "title",
        "content",
        "metadata",
        "tags",
        "status",
        "priority",
        "due_date",
        "reminder_at",
        "recurrence_rule",
        "completed_at",
    }
)
_ITEM_JSON = frozenset({"metadata", "tags"})


def _like(fragment: str) -> str:
    escaped = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PersonalStore(SQLiteStore):
    """Personal hub rows: items, goals, habits and the habit completion log."""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS personal_items (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            item_type TEXT NOT NULL DEFAULT 'task',
            title TEXT NOT NULL,
            content TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            tags TEXT NOT NULL DEFAULT '[]',
            status TEXT NOT NULL DEFAULT 'active',
            priority TEXT NOT NULL DEFAULT 'medium',
            due_date TEXT,
            reminder_at TEXT,
            recurrence_rule TEXT,
            completed_at REAL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_personal_items_user ON personal_items(user_id, status, created_at)",
        """
        CREATE TABLE IF NOT EXISTS personal_goals (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            category TEXT NOT NULL DEFAULT 'general',
            target_value REAL,
            current_value REAL NOT NULL DEFAULT 0,
            unit TEXT,
            target_date TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS personal_habits (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            frequency TEXT NOT NULL DEFAULT 'daily',
            target_count INTEGER NOT NULL DEFAULT 1,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_completed_at REAL,
            created_at REAL NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS habit_completions (
            id TEXT PRIMARY KEY,
            habit_id TEXT NOT NULL REFERENCES personal_habits(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            completed_at REAL NOT NULL
        )
        """,
    )

    # ---- rows ----

    def _row_to_item(self, row: sqlite3.Row) -> PersonalItem:
        return PersonalItem(
            id=row["id"],
            user_id=row["user_id"],
            item_type=row["item_type"] or "task",
            title=row["title"],
            content=row["content"],
            metadata=self._json_dict(row["metadata"]),
            tags=[str(t) for t in self._json_list(row["tags"])],
            status=row["status"],
            priority=row["priority"],
            due_date=row["due_date"],
            reminder_at=row["reminder_at"],
            recurrence_rule=row["recurrence_rule"],
            completed_at=row["completed_at"],
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> PersonalGoal:
        return PersonalGoal(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            target_value=row["target_value"],
            current_value=float(row["current_value"] or 0),
            unit=row["unit"],
            target_date=row["target_date"],
            status=row["status"],
            created_at=float(row["created_at"]),
        )

    @staticmethod
    def _row_to_habit(row: sqlite3.Row) -> PersonalHabit:
        return PersonalHabit(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            description=row["description"],
            frequency=row["frequency"],
            target_count=int(row["target_count"]),
            current_streak=int(row["current_streak"]),
            longest_streak=int(row["longest_streak"]),
            is_active=bool(row["is_active"]),
            last_completed_at=row["last_completed_at"],
            created_at=float(row["created_at"]),
        )

    # ---- items ----

    def add_item(
            self,
            *,
            user_id: str,
            title: str,
            item_type: str = "task",
            content: str | None = None,
            metadata: dict[str, Any] | None = None,
            tags: list[str] | None = None,
            priority: str = "medium",
            due_date: str | None = None,
            reminder_at: str | None = None,
            recurrence_rule: str | None = None,
    ) -> PersonalItem:
        if not title or not title.strip():
            raise ValueError("title is required")
        item_id = new_id()
        now = time.time()
        self._execute(
            """
            INSERT INTO personal_items(
                id, user_id, item_type, title, content, metadata, tags, status, priority,
                due_date, reminder_at, recurrence_rule, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'active', ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id,
                user_id,
                item_type or "task",
                title.strip(),
                content,
                self._json_dump(metadata or {}),
                self._json_dump(list(tags or [])),
                priority or "medium",
                due_date,
                reminder_at,
                recurrence_rule,
                now,
                now,
            ),
        )
        return self.require_item(item_id)

    def get_item(self, item_id: str, *, user_id: str | None = None) -> PersonalItem | None:
        sql = "SELECT * FROM personal_items WHERE id = ?"
        params: list[Any] = [item_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._fetch_one(sql, params)
        return self._row_to_item(row) if row else None

    def require_item(self, item_id: str, *, user_id: str | None = None) -> PersonalItem:
        item = self.get_item(item_id, user_id=user_id)
        if item is None:
            raise PersonalItemNotFoundError()
        return item

    def find_item_by_title(
            self,
            user_id: str,
            fragment: str,
            *,
            statuses: tuple[str, ...] | None = None,
            exclude_status: str | None = None,
    ) -> PersonalItem | None:
        """Newest item whose title contains `fragment` (case-insensitive)."""
        sql = "SELECT * FROM personal_items WHERE user_id = ? AND title LIKE ? ESCAPE '\\'"
        params: list[Any] = [user_id, _like(fragment)]
        if statuses:
            sql += f" AND status IN ({','.join('?' for _ in statuses)})"
            params.extend(statuses)
        if exclude_status:
            sql += " AND status != ?"
            params.append(exclude_status)
        sql += " ORDER BY created_at DESC LIMIT 1"
        row = self._fetch_one(sql, params)
        return self._row_to_item(row) if row else None

    def list_items(
            self,
            user_id: str,
            *,
            item_type: str | None = None,
            status: str | None = None,
            limit: int = 50,
    ) -> list[PersonalItem]:
        sql = "SELECT * FROM personal_items WHERE user_id = ? AND status != 'deleted'"
        params: list[Any] = [user_id]
        if item_type:
            sql += " AND item_type = ?"
            params.append(item_type)
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(int(limit))
        return [self._row_to_item(r) for r in self._fetch_all(sql, params)]

    def update_item(self, item_id: str, *, user_id: str, **fields: Any) -> bool:
        if not fields:
            return False
        sets, params = self._build_update(
            "personal_items", fields, allowed=_ITEM_UPDATABLE, json_fields=_ITEM_JSON
        )
        sets.append("updated_at = ?")
        params += [time.time(), item_id, user_id]
        sql = f"UPDATE personal_items SET {', '.join(sets)} WHERE id = ? AND user_id = ?"
        return self._execute(sql, params) == 1

    # ---- goals ----

    def add_goal(
            self,
            *,
            user_id: str,
            title: str,
            description: str | None = None,
            category: str = "general",
            target_value: float | None = None,
            unit: str | None = None,
            target_date: str | None = None,
    ) -> PersonalGoal:
        if not title or not title.strip():
            raise ValueError("title is required")
        goal_id = new_id()
        now = time.time()
        self._execute(
            """
            INSERT INTO personal_goals(
                id, user_id, title, description, category, target_value, current_value,
                unit, target_date, status, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, 'active', ?, ?)
            """,
            (
                goal_id,
                user_id,
                title.strip(),
                description,
                category or "general",
                target_value,
                unit,
                target_date,
                now,
                now,
            ),
        )
        return self.require_goal(goal_id)

    def get_goal(self, goal_id: str, *, user_id: str | None = None) -> PersonalGoal | None:
        sql = "SELECT * FROM personal_goals WHERE id = ?"
        params: list[Any] = [goal_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._fetch_one(sql, params)
        return self._row_to_goal(row) if row else None

    def require_goal(self, goal_id: str, *, user_id: str | None = None) -> PersonalGoal:
        goal = self.get_goal(goal_id, user_id=user_id)
        if goal is None:
            raise GoalNotFoundError()
        return goal

    def find_active_goal(self, user_id: str, fragment: str) -> PersonalGoal | None:
        row = self._fetch_one(
            """
            SELECT * FROM personal_goals
            WHERE user_id = ? AND status = 'active' AND title LIKE ? ESCAPE '\\'
            ORDER BY created_at DESC LIMIT 1
            """,
            (user_id, _like(fragment)),
        )
        return self._row_to_goal(row) if row else None

    def list_goals(self, user_id: str, *, status: str | None = "active", limit: int = 10) -> list[PersonalGoal]:
        sql = "SELECT * FROM personal_goals WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(int(limit))
        return [self._row_to_goal(r) for r in self._fetch_all(sql, params)]

    def set_goal_progress(self, goal_id: str, *, current_value: float, status: str) -> bool:
        return self._execute(
            "UPDATE personal_goals SET current_value = ?, status = ?, updated_at = ? WHERE id = ?",
            (current_value, status, time.time(), goal_id),
        ) == 1

    # ---- habits ----

    def add_habit(
            self,
            *,
            user_id: str,
            name: str,
            description: str | None = None,
            frequency: str = "daily",
            target_count: int = 1,
    ) -> PersonalHabit:
        if not name or not name.strip():
            raise ValueError("name is required")
        habit_id = new_id()
        self._execute(
            """
            INSERT INTO personal_habits(
                id, user_id, name, description, frequency, target_count,
                current_streak, longest_streak, is_active, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 0, 0, 1, ?)
            """,
            (habit_id, user_id, name.strip(), description, frequency or "daily", int(target_count or 1), time.time()),
        )
        return self.require_habit(habit_id)

    def get_habit(self, habit_id: str, *, user_id: str | None = None) -> PersonalHabit | None:
        sql = "SELECT * FROM personal_habits WHERE id = ?"
        params: list[Any] = [habit_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._fetch_one(sql, params)
        return self._row_to_habit(row) if row else None

    def require_habit(self, habit_id: str, *, user_id: str | None = None) -> PersonalHabit:
        habit = self.get_habit(habit_id, user_id=user_id)
        if habit is None:
            raise HabitNotFoundError()
        return habit

    def find_active_habit(self, user_id: str, fragment: str) -> PersonalHabit | None:
        row = self._fetch_one(
            """
            SELECT * FROM personal_habits
            WHERE user_id = ? AND is_active = 1 AND name LIKE ? ESCAPE '\\'
            ORDER BY created_at DESC LIMIT 1
            """,
            (user_id, _like(fragment)),
        )
        return self._row_to_habit(row) if row else None

    def list_habits(self, user_id: str, *, limit: int = 10) -> list[PersonalHabit]:
        rows = self._fetch_all(
            "SELECT * FROM personal_habits WHERE user_id = ? AND is_active = 1 ORDER BY created_at DESC LIMIT ?",
            (user_id, int(limit)),
        )
        return [self._row_to_habit(r) for r in rows]

    def record_habit_completion(self, habit: PersonalHabit) -> PersonalHabit:
        """Log a completion and bump the streak in one transaction."""
        now = time.time()
        streak = habit.current_streak + 1
        longest = max(habit.longest_streak, streak)
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO habit_completions(id, habit_id, user_id, completed_at) VALUES (?, ?, ?, ?)",
                (new_id(), habit.id, habit.user_id, now),
            )
            conn.execute(
                """
                UPDATE personal_habits
                SET current_streak = ?, longest_streak = ?, last_completed_at = ?
                WHERE id = ?
                """,
                (streak, longest, now, habit.id),
            )
        logger.debug("Habit %s completed streak=%d", habit.id, streak)
        return self.require_habit(habit.id)

    def count_completions(self, habit_id: str) -> int:
        row = self._fetch_one("SELECT COUNT(*) FROM habit_completions WHERE habit_id = ?", (habit_id,))
        return int(row[0]) if row else 0
