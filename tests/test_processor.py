# tests/test_processor.py

from __future__ import annotations

import json

import httpx
import pytest

from atlas_os.llm.errors import UNAVAILABLE_MESSAGE, LLMUnavailableError
from atlas_os.notifications.notification_store import NotificationStore
from atlas_os.tasks.processor import TaskProcessor, next_progress
from atlas_os.tasks.task_models import TaskStatus
from atlas_os.tasks.task_store import TaskNotFoundError, TaskStore

from .fakes import FakeLLMClient


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _processor(task_store, notification_store, llm, clock=None, **kw) -> TaskProcessor:
    return TaskProcessor(
        task_store,
        notification_store,
        llm,
        inter_task_delay_seconds=0.0,
        retry_delay_seconds=0.0,
        sleep=lambda _s: None,
        clock=clock or Clock(),
        **kw,
    )


def test_next_progress_never_goes_backwards() -> None:
    assert next_progress(40, 20) == 40
    assert next_progress(40, None) == 50
    assert next_progress(95, "oops") == 100
    assert next_progress(10, 250) == 100


def test_process_task_updates_progress_and_output(
        task_store: TaskStore, notification_store: NotificationStore
) -> None:
    task = task_store.add_task(user_id="u1", task_title="Research vendors")
    llm = FakeLLMClient(
        json.dumps(
            {
                "work_done": "Listed three vendors",
                "new_progress": 40,
                "output": {"vendors": ["a", "b", "c"]},
                "is_complete": False,
                "next_steps": "Compare prices",
            }
        )
    )
    clock = Clock()
    result = _processor(task_store, notification_store, llm, clock).process_task(task)

    assert result.success and result.progress == 40
    stored = task_store.require_task(task.id)
    assert stored.progress == 40
    assert stored.status == TaskStatus.PENDING
    assert stored.started_at == clock.now
    assert stored.output_data["vendors"] == ["a", "b", "c"]
    assert stored.output_data["last_work"] == "Listed three vendors"
    assert stored.output_data["processed_at"] == clock.now
    assert notification_store.get_notifications("u1") == []
    assert llm.calls[0].temperature == 0.3


def test_completion_sends_notification(task_store: TaskStore, notification_store: NotificationStore) -> None:
    task = task_store.add_task(user_id="u1", task_title="Urgent fix", task_priority="critical", progress=90)
    llm = FakeLLMClient('{"work_done": "Fixed", "is_complete": true}')

    result = _processor(task_store, notification_store, llm).process_task(task)

    assert result.success
    stored = task_store.require_task(task.id)
    assert stored.status == TaskStatus.COMPLETED
    assert stored.completed_at is not None
    (note,) = notification_store.get_notifications("u1")
    assert note.title == "Task Completed: Urgent fix"
    assert note.priority == "high"
    assert note.source_agent_name == "Atlas"
    assert note.related_entity_id == task.id


def test_unparseable_reply_records_error(task_store: TaskStore, notification_store: NotificationStore) -> None:
    task = task_store.add_task(user_id="u1", task_title="Vague", progress=20)
    llm = FakeLLMClient("I cannot answer in JSON today")

    result = _processor(task_store, notification_store, llm).process_task(task)

    assert not result.success
    assert result.progress == 20
    assert result.error == "Failed to parse AI response"
    stored = task_store.require_task(task.id)
    assert stored.status == TaskStatus.PENDING
    assert stored.input_data["error_count"] == 1
    assert stored.input_data["last_error"] == "Failed to parse AI response"


def test_process_task_by_id_missing(task_store: TaskStore, notification_store: NotificationStore) -> None:
    with pytest.raises(TaskNotFoundError):
        _processor(task_store, notification_store, FakeLLMClient()).process_task_by_id("nope")


def test_background_sweep_fails_skips_and_processes(
        task_store: TaskStore, notification_store: NotificationStore
) -> None:
    clock = Clock()
    broken = task_store.add_task(user_id="u1", task_title="broken", input_data={"error_count": 5})
    recent = task_store.add_task(user_id="u2", task_title="recent")
    task_store.update_task(recent.id, output_data={"processed_at": clock.now - 10})
    fresh = task_store.add_task(user_id="u2", task_title="fresh")
    llm = FakeLLMClient('{"work_done": "step", "new_progress": 30}')

    summary = _processor(task_store, notification_store, llm, clock).background_sweep()

    by_id = {r["id"]: r for r in summary.results}
    assert by_id[broken.id] == {"id": broken.id, "failed": True, "reason": "max_errors"}
    assert by_id[recent.id]["reason"] == "cooldown"
    assert by_id[fresh.id]["success"] is True
    assert summary.skipped == 1
    assert summary.processed == 2
    assert task_store.require_task(broken.id).status == TaskStatus.FAILED
    assert len(llm.calls) == 1


def test_process_user_tasks_respects_user_cooldown(
        task_store: TaskStore, notification_store: NotificationStore
) -> None:
    clock = Clock()
    a = task_store.add_task(user_id="u1", task_title="a", task_priority="low")
    b = task_store.add_task(user_id="u1", task_title="b", task_priority="high")
    task_store.update_task(a.id, output_data={"processed_at": clock.now - 5})
    llm = FakeLLMClient('{"new_progress": 15}')

    out = _processor(task_store, notification_store, llm, clock).process_user_tasks("u1")

    assert [r["id"] for r in out["results"]] == [b.id, a.id]
    assert out["results"][1] == {"id": a.id, "skipped": True, "reason": "recently_processed"}


def test_gateway_connection_failure_is_retried(task_store: TaskStore, notification_store: NotificationStore) -> None:
    task = task_store.add_task(user_id="u1", task_title="Flaky network")
    unavailable = LLMUnavailableError(UNAVAILABLE_MESSAGE)
    unavailable.__cause__ = httpx.ConnectError("All connection attempts failed")
    llm = FakeLLMClient(unavailable, '{"work_done": "Done", "new_progress": 30}')

    result = _processor(task_store, notification_store, llm).process_task(task)

    assert result.success and result.progress == 30
    assert len(llm.calls) == 2
