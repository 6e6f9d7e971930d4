# tests/test_task_store.py

from __future__ import annotations

import pytest

from atlas_os.tasks.task_models import OrchestrationMode, TaskPriority, TaskStatus
from atlas_os.tasks.task_store import TaskNotFoundError, TaskStore


def test_add_get_update_delete(task_store: TaskStore) -> None:
    task = task_store.add_task(
        user_id="u1",
        task_title="Write report",
        task_priority="high",
        input_data={"source": "test"},
    )
    assert task.status == TaskStatus.PENDING
    assert task.task_priority == TaskPriority.HIGH
    assert task.orchestration_mode == OrchestrationMode.MANUAL
    assert task.input_data == {"source": "test"}

    assert task_store.update_task(task.id, user_id="u1", progress=150, status=TaskStatus.IN_PROGRESS)
    updated = task_store.require_task(task.id)
    assert updated.progress == 100
    assert updated.status == TaskStatus.IN_PROGRESS

    # other users cannot touch it
    assert not task_store.update_task(task.id, user_id="u2", progress=10)
    assert not task_store.delete_task(task.id, user_id="u2")

    assert task_store.delete_task(task.id, user_id="u1")
    with pytest.raises(TaskNotFoundError):
        task_store.require_task(task.id)


def test_update_rejects_unknown_columns(task_store: TaskStore) -> None:
    task = task_store.add_task(user_id="u1", task_title="x")
    with pytest.raises(ValueError):
        task_store.update_task(task.id, user_id="u1", user_id_override="u2")


def test_open_tasks_by_priority(task_store: TaskStore) -> None:
    low = task_store.add_task(user_id="u1", task_title="low", task_priority="low")
    crit = task_store.add_task(user_id="u1", task_title="crit", task_priority="critical")
    mid = task_store.add_task(user_id="u1", task_title="mid")
    done = task_store.add_task(user_id="u1", task_title="done", status=TaskStatus.COMPLETED)

    by_priority = [t.id for t in task_store.list_open_tasks(user_id="u1", by_priority=True)]
    assert by_priority == [crit.id, mid.id, low.id]

    oldest_first = [t.id for t in task_store.list_open_tasks()]
    assert oldest_first == [low.id, crit.id, mid.id]
    assert done.id not in oldest_first


def test_open_task_titles_and_assigned(task_store: TaskStore) -> None:
    task_store.add_task(user_id="u1", task_title="  Buy Milk ")
    task_store.add_task(user_id="u1", task_title="Old", status=TaskStatus.COMPLETED)
    assigned = task_store.add_task(user_id="u1", task_title="Assigned", assigned_agents=["a1"])

    assert task_store.open_task_titles("u1") == {"buy milk", "assigned"}
    assert [t.id for t in task_store.list_assigned_tasks("u1")] == [assigned.id]
    assert task_store.count_tasks(user_id="u1") == 3
    assert len(task_store.list_user_tasks("u1", limit=2)) == 2
