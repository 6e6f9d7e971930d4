# src/atlas_os/personal/hub.py

from __future__ import annotations

"""
Personal hub operations.

Items, goals and habits can be addressed either by id or by a case-insensitive
fragment of their title/name, so Atlas can act on "complete the dentist task"
without knowing ids.
"""

import logging
import time
from datetime import date
from typing import Any

from ..assistant.conversation_store import ConversationStore, render_transcript
from ..core.ports import LLMClient
from ..llm.parsing import extract_json_array
from ..tasks.task_models import OrchestrationMode, TaskStatus
from ..tasks.task_store import TaskStore
from .personal_store import (
    GoalNotFoundError,
    HabitNotFoundError,
    PersonalItemNotFoundError,
    PersonalStore,
)

logger = logging.getLogger(__name__)

MEMORY_WINDOW = 50
SUMMARY_ITEM_LIMIT = 20
SUMMARY_PREVIEW = 5

EXTRACTION_SYSTEM_PROMPT = (
    "You are a task extractor assistant. Extract actionable tasks from "
    "conversations and return them as JSON."
)


def build_extraction_prompt(transcript: str) -> str:
    return f"""Analyze the following conversation between a user and Atlas (an AI assistant). Extract any tasks, action items, or commitments that were discussed or assigned.

For each task found, provide:
- title: A concise task title (max 100 chars)
- description: Brief description of what needs to be done
- priority: "low", "medium", "high", or "critical"
- status: "pending" if not started, "in_progress" if work has begun

Only extract tasks that are actionable and specific. Do not include vague mentions or completed tasks.

Return a JSON array of tasks, or an empty array if no tasks are found.

Conversation:
{transcript}

Return ONLY valid JSON in this format:
[{{"title": "...", "description": "...", "priority": "medium", "status": "pending"}}]"""


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _number(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be a number") from None


class PersonalHub:
    def __init__(
            self,
            store: PersonalStore,
            *,
            tasks: TaskStore,
            conversations: ConversationStore,
            llm: LLMClient,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._conversations = conversations
        self._llm = llm

    # ---- items ----

    def create_personal_item(
            self,
            user_id: str,
            *,
            title: str | None,
            item_type: str | None = None,
            content: str | None = None,
            metadata: dict[str, Any] | None = None,
            tags: list[str] | None = None,
            priority: str | None = None,
            due_date: str | None = None,
            reminder_at: str | None = None,
            recurrence_rule: str | None = None,
    ) -> dict[str, Any]:
        if not title:
            raise ValueError("title is required")
        item = self._store.add_item(
            user_id=user_id,
            title=title,
            item_type=item_type or "task",
            content=content,
            metadata=metadata,
            tags=tags,
            priority=priority or "medium",
            due_date=due_date,
            reminder_at=reminder_at,
            recurrence_rule=recurrence_rule,
        )
        label = item_type or "Task"
        return {"item": item.to_dict(), "message": f'{label} "{item.title}" created'}

    def update_personal_item(self, user_id: str, item_id: str | None, updates: dict[str, Any]) -> dict[str, Any]:
        if not item_id:
            raise ValueError("itemId is required")
        fields = {k: v for k, v in (updates or {}).items() if k not in ("id", "user_id", "created_at", "updated_at")}
        if fields.get("status") == "completed" and "completed_at" not in fields:
            fields["completed_at"] = time.time()
        self._store.require_item(item_id, user_id=user_id)
        if fields:
            self._store.update_item(item_id, user_id=user_id, **fields)
        item = self._store.require_item(item_id, user_id=user_id)
        return {"item": item.to_dict(), "message": "Item updated"}

    def complete_personal_item(
            self,
            user_id: str,
            *,
            item_id: str | None = None,
            title: str | None = None,
    ) -> dict[str, Any]:
        if item_id:
            item = self._store.get_item(item_id, user_id=user_id)
        elif title:
            item = self._store.find_item_by_title(user_id, title, statuses=("active",))
        else:
            raise ValueError("itemId or title is required")
        if item is None:
            raise PersonalItemNotFoundError()

        self._store.update_item(item.id, user_id=user_id, status="completed", completed_at=time.time())
        item = self._store.require_item(item.id)
        return {"item": item.to_dict(), "message": f'"{item.title}" completed'}

    def delete_personal_item(
            self,
            user_id: str,
            *,
            item_id: str | None = None,
            title: str | None = None,
    ) -> dict[str, Any]:
        """Soft delete: the row stays with status `deleted`."""
        if item_id:
            item = self._store.get_item(item_id, user_id=user_id)
        elif title:
            item = self._store.find_item_by_title(user_id, title, exclude_status="deleted")
        else:
            raise ValueError("itemId or title is required")
        if item is None:
            raise PersonalItemNotFoundError()

        self._store.update_item(item.id, user_id=user_id, status="deleted")
        return {"success": True, "message": f'"{item.title}" deleted'}

    def get_personal_items(
            self,
            user_id: str,
            *,
            item_type: str | None = None,
            status: str | None = None,
            limit: int = 50,
    ) -> dict[str, Any]:
        items = self._store.list_items(user_id, item_type=item_type, status=status, limit=limit)
        return {"items": [i.to_dict() for i in items]}

    # ---- goals ----

    def create_goal(
            self,
            user_id: str,
            *,
            title: str | None,
            description: str | None = None,
            category: str | None = None,
            target_value: Any = None,
            unit: str | None = None,
            target_date: str | None = None,
    ) -> dict[str, Any]:
        if not title:
            raise ValueError("title is required")
        goal = self._store.add_goal(
            user_id=user_id,
            title=title,
            description=description,
            category=category or "general",
            target_value=None if target_value is None else _number(target_value, "targetValue"),
            unit=unit,
            target_date=target_date,
        )
        return {"goal": goal.to_dict(), "message": f'Goal "{goal.title}" created'}

    def update_goal_progress(
            self,
            user_id: str,
            *,
            goal_id: str | None = None,
            title: str | None = None,
            value: Any = None,
            increment: Any = None,
    ) -> dict[str, Any]:
        if goal_id:
            goal = self._store.get_goal(goal_id, user_id=user_id)
        elif title:
            goal = self._store.find_active_goal(user_id, title)
        else:
            raise ValueError("goalId or title is required")
        if goal is None:
            raise GoalNotFoundError()

        if increment:
            new_value = goal.current_value + _number(increment, "increment")
        elif value is not None:
            new_value = _number(value, "value")
        else:
            raise ValueError("value or increment is required")

        status = goal.status
        if goal.target_value and new_value >= goal.target_value:
            status = "completed"
        self._store.set_goal_progress(goal.id, current_value=new_value, status=status)
        goal = self._store.require_goal(goal.id)

        unit = f" {goal.unit}" if goal.unit else ""
        return {
            "goal": goal.to_dict(),
            "message": f"Goal progress updated to {_format_number(new_value)}{unit}",
        }

    # ---- habits ----

    def create_habit(
            self,
            user_id: str,
            *,
            name: str | None,
            description: str | None = None,
            frequency: str | None = None,
            target_count: Any = None,
    ) -> dict[str, Any]:
        if not name:
            raise ValueError("name is required")
        habit = self._store.add_habit(
            user_id=user_id,
            name=name,
            description=description,
            frequency=frequency or "daily",
            target_count=int(_number(target_count, "targetCount")) if target_count is not None else 1,
        )
        return {"habit": habit.to_dict(), "message": f'Habit "{habit.name}" created'}

    def complete_habit(
            self,
            user_id: str,
            *,
            habit_id: str | None = None,
            name: str | None = None,
    ) -> dict[str, Any]:
        if habit_id:
            habit = self._store.get_habit(habit_id, user_id=user_id)
        elif name:
            habit = self._store.find_active_habit(user_id, name)
        else:
            raise ValueError("habitId or name is required")
        if habit is None:
            raise HabitNotFoundError()

        habit = self._store.record_habit_completion(habit)
        return {
            "habit": habit.to_dict(),
            "streak": habit.current_streak,
            "message": f"{habit.name} completed! {habit.current_streak} day streak",
        }

    # ---- summary ----

    def get_personal_summary(self, user_id: str, *, today: date | None = None) -> dict[str, Any]:
        day = (today or date.today()).isoformat()
        items = self._store.list_items(user_id, status="active", limit=SUMMARY_ITEM_LIMIT)
        tasks = [i for i in items if i.item_type == "task"]
        goals = self._store.list_goals(user_id)
        habits = self._store.list_habits(user_id)

        due_today = [t for t in tasks if t.due_day == day]
        overdue = [t for t in tasks if t.due_day is not None and t.due_day < day]

        return {
            "summary": {
                "tasks": {
                    "total": len(tasks),
                    "today": len(due_today),
                    "overdue": len(overdue),
                    "items": [t.to_dict() for t in tasks[:SUMMARY_PREVIEW]],
                },
                "goals": {
                    "total": len(goals),
                    "items": [g.to_dict() for g in goals],
                },
                "habits": {
                    "total": len(habits),
                    "totalStreak": sum(h.current_streak for h in habits),
                    "items": [h.to_dict() for h in habits],
                },
            }
        }

    # ---- memory sync ----

    def sync_memory_tasks(self, user_id: str) -> dict[str, Any]:
        """Extract actionable tasks from the memory feed into the agent task queue."""
        messages = self._conversations.recent_memory_messages(user_id, limit=MEMORY_WINDOW)
        if not messages:
            return {"tasks": [], "message": "No memory to extract tasks from"}

        content = self._llm.complete(
            [{"role": "user", "content": build_extraction_prompt(render_transcript(messages))}],
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
        )
        extracted = [
            t for t in extract_json_array(content)
            if isinstance(t, dict) and isinstance(t.get("title"), str) and t["title"].strip()
        ]
        if not extracted:
            return {"tasks": [], "message": "No actionable tasks found in memory"}

        existing = self._tasks.open_task_titles(user_id)
        fresh: list[dict[str, Any]] = []
        for t in extracted:
            key = t["title"].strip().lower()
            if key in existing:
                continue
            existing.add(key)
            fresh.append(t)

        if not fresh:
            return {
                "tasks": [],
                "extracted": len(extracted),
                "inserted": 0,
                "message": f"Found {len(extracted)} tasks but all already exist",
            }

        inserted = []
        for t in fresh:
            status = TaskStatus.from_db(t.get("status"))
            inserted.append(
                self._tasks.add_task(
                    user_id=user_id,
                    task_title=t["title"],
                    task_description=str(t.get("description") or ""),
                    task_priority=str(t.get("priority") or "medium"),
                    task_type="assistance",
                    orchestration_mode=OrchestrationMode.HYBRID,
                    status=status,
                    progress=25 if status is TaskStatus.IN_PROGRESS else 0,
                    input_data={"source": "memory_extraction"},
                )
            )
        logger.info("Memory sync user=%s extracted=%d inserted=%d", user_id, len(extracted), len(inserted))
        return {
            "tasks": [task.to_dict() for task in inserted],
            "extracted": len(extracted),
            "inserted": len(inserted),
            "message": f"Extracted {len(extracted)} tasks, inserted {len(inserted)} new tasks",
        }
