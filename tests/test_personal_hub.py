# tests/test_personal_hub.py

from __future__ import annotations

import json
from datetime import date

import pytest

from atlas_os.assistant.conversation_store import ConversationStore
from atlas_os.personal.hub import PersonalHub
from atlas_os.personal.personal_store import (
    GoalNotFoundError,
    HabitNotFoundError,
    PersonalItemNotFoundError,
    PersonalStore,
)
from atlas_os.tasks.task_models import TaskStatus
from atlas_os.tasks.task_store import TaskStore

from .fakes import FakeLLMClient


@pytest.fixture()
def hub(
        personal_store: PersonalStore,
        task_store: TaskStore,
        conversation_store: ConversationStore,
        llm: FakeLLMClient,
) -> PersonalHub:
    return PersonalHub(personal_store, tasks=task_store, conversations=conversation_store, llm=llm)


def test_create_item_defaults(hub: PersonalHub) -> None:
    out = hub.create_personal_item("u1", title="  Call dentist ")

    item = out["item"]
    assert item["title"] == "Call dentist"
    assert item["item_type"] == "task"
    assert item["status"] == "active"
    assert item["priority"] == "medium"
    assert out["message"] == 'Task "Call dentist" created'

    note = hub.create_personal_item("u1", title="Idea", item_type="note", tags=["later"])
    assert note["message"] == 'note "Idea" created'
    assert note["item"]["tags"] == ["later"]

    with pytest.raises(ValueError, match="title is required"):
        hub.create_personal_item("u1", title="")


def test_update_item_to_completed_stamps_completion(hub: PersonalHub) -> None:
    item_id = hub.create_personal_item("u1", title="Pay rent")["item"]["id"]

    out = hub.update_personal_item("u1", item_id, {"status": "completed", "id": "ignored"})

    assert out["item"]["id"] == item_id
    assert out["item"]["status"] == "completed"
    assert out["item"]["completed_at"] is not None

    with pytest.raises(PersonalItemNotFoundError):
        hub.update_personal_item("u2", item_id, {"title": "Stolen"})
    with pytest.raises(ValueError, match="itemId is required"):
        hub.update_personal_item("u1", None, {})


def test_complete_and_delete_by_title_fragment(hub: PersonalHub, personal_store: PersonalStore) -> None:
    hub.create_personal_item("u1", title="Book DENTIST appointment")
    hub.create_personal_item("u1", title="Buy milk")

    done = hub.complete_personal_item("u1", title="dentist")
    assert done["message"] == '"Book DENTIST appointment" completed'

    # completed items are no longer matched for completion
    with pytest.raises(PersonalItemNotFoundError):
        hub.complete_personal_item("u1", title="dentist")

    gone = hub.delete_personal_item("u1", title="milk")
    assert gone == {"success": True, "message": '"Buy milk" deleted'}

    items = hub.get_personal_items("u1")["items"]
    assert [i["title"] for i in items] == ["Book DENTIST appointment"]
    with pytest.raises(PersonalItemNotFoundError):
        hub.delete_personal_item("u1", title="milk")


def test_title_fragments_are_literal(hub: PersonalHub) -> None:
    hub.create_personal_item("u1", title="Finish report")

    with pytest.raises(PersonalItemNotFoundError):
        hub.complete_personal_item("u1", title="%")


def test_goal_progress_by_increment_and_completion(hub: PersonalHub) -> None:
    goal = hub.create_goal("u1", title="Read books", target_value="12", unit="books")["goal"]
    assert goal["current_value"] == 0
    assert goal["category"] == "general"

    step = hub.update_goal_progress("u1", title="read", increment=5)
    assert step["goal"]["current_value"] == 5
    assert step["goal"]["status"] == "active"
    assert step["message"] == "Goal progress updated to 5 books"

    done = hub.update_goal_progress("u1", goal_id=goal["id"], value=12.5)
    assert done["goal"]["status"] == "completed"
    assert done["message"] == "Goal progress updated to 12.5 books"

    # completed goals are not found by title
    with pytest.raises(GoalNotFoundError):
        hub.update_goal_progress("u1", title="read", increment=1)


def test_goal_progress_validation(hub: PersonalHub) -> None:
    goal = hub.create_goal("u1", title="Run")["goal"]

    with pytest.raises(ValueError, match="value or increment is required"):
        hub.update_goal_progress("u1", goal_id=goal["id"])
    with pytest.raises(ValueError, match="increment must be a number"):
        hub.update_goal_progress("u1", goal_id=goal["id"], increment="lots")
    with pytest.raises(ValueError, match="targetValue must be a number"):
        hub.create_goal("u1", title="Bad", target_value="many")


def test_habit_completion_grows_streak(hub: PersonalHub, personal_store: PersonalStore) -> None:
    habit = hub.create_habit("u1", name="Meditate")["habit"]
    assert habit["frequency"] == "daily"
    assert habit["target_count"] == 1

    hub.complete_habit("u1", habit_id=habit["id"])
    out = hub.complete_habit("u1", name="medit")

    assert out["streak"] == 2
    assert out["habit"]["longest_streak"] == 2
    assert out["message"] == "Meditate completed! 2 day streak"
    assert personal_store.count_completions(habit["id"]) == 2

    with pytest.raises(HabitNotFoundError):
        hub.complete_habit("u1", name="juggle")
    with pytest.raises(ValueError, match="habitId or name is required"):
        hub.complete_habit("u1")


def test_summary_counts_today_and_overdue(hub: PersonalHub) -> None:
    hub.create_personal_item("u1", title="Today", due_date="2026-03-10")
    hub.create_personal_item("u1", title="Late", due_date="2026-03-01T09:00:00Z")
    hub.create_personal_item("u1", title="Someday")
    hub.create_personal_item("u1", title="A note", item_type="note", due_date="2026-03-01")
    hub.create_goal("u1", title="Save")
    first = hub.create_habit("u1", name="Walk")["habit"]
    hub.create_habit("u1", name="Stretch")
    hub.complete_habit("u1", habit_id=first["id"])

    summary = hub.get_personal_summary("u1", today=date(2026, 3, 10))["summary"]

    assert summary["tasks"]["total"] == 3
    assert summary["tasks"]["today"] == 1
    assert summary["tasks"]["overdue"] == 1
    assert summary["goals"]["total"] == 1
    assert summary["habits"]["total"] == 2
    assert summary["habits"]["totalStreak"] == 1


def test_sync_memory_tasks_without_memory(hub: PersonalHub, llm: FakeLLMClient) -> None:
    out = hub.sync_memory_tasks("u1")

    assert out == {"tasks": [], "message": "No memory to extract tasks from"}
    assert llm.calls == []


def test_sync_memory_tasks_inserts_only_new_titles(
        hub: PersonalHub,
        llm: FakeLLMClient,
        conversation_store: ConversationStore,
        task_store: TaskStore,
) -> None:
    conversation_store.add_memory_message(user_id="u1", role="user", content="Remind me to renew my passport")
    conversation_store.add_memory_message(user_id="u1", role="assistant", content="Sure, and the car insurance?")
    task_store.add_task(user_id="u1", task_title="Renew car insurance")
    llm.queue(json.dumps([
        {"title": "Renew passport", "description": "Before June", "priority": "high", "status": "in_progress"},
        {"title": "renew car insurance ", "priority": "medium"},
        {"title": "", "priority": "low"},
    ]))

    out = hub.sync_memory_tasks("u1")

    assert out["extracted"] == 2
    assert out["inserted"] == 1
    assert out["message"] == "Extracted 2 tasks, inserted 1 new tasks"
    task = out["tasks"][0]
    assert task["task_title"] == "Renew passport"
    assert task["status"] == TaskStatus.IN_PROGRESS.value
    assert task["progress"] == 25
    assert task["task_type"] == "assistance"
    assert task["input_data"] == {"source": "memory_extraction"}
    assert "User: Remind me to renew my passport\nAtlas: Sure, and the car insurance?" in llm.calls[0].prompt


def test_sync_memory_tasks_reports_duplicates(
        hub: PersonalHub,
        llm: FakeLLMClient,
        conversation_store: ConversationStore,
        task_store: TaskStore,
) -> None:
    conversation_store.add_memory_message(user_id="u1", role="user", content="Water the plants")
    task_store.add_task(user_id="u1", task_title="Water the plants")
    llm.queue('[{"title": "Water the plants"}]')

    out = hub.sync_memory_tasks("u1")

    assert out["inserted"] == 0
    assert out["message"] == "Found 1 tasks but all already exist"
