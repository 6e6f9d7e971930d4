# src/atlas_os/tasks/processor.py

from __future__ import annotations

"""
Background task processor.

Each pass asks the LLM to advance one queue task: the model reports the work
it did, a new progress value and whether the task is done. Results are
merged into output_data; failures are recorded on the task (last_error,
error_count) without failing it, the sweeper fails a task only after
too many errors.
"""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import LLMClient, NotificationSink, TaskRepo
from ..core.retry import with_retry
from ..llm.parsing import extract_json_object
from .task_models import QueueTask, TaskPriority, TaskStatus
from .task_store import TaskNotFoundError

logger = logging.getLogger(__name__)

PROCESSOR_SYSTEM_PROMPT = "You are Atlas, an AI task processor. Respond only with valid JSON."


def build_task_prompt(task: QueueTask) -> str:
    return f"""You are Atlas, an AI assistant processing a background task.

Task: {task.task_title}
Description: {task.task_description or 'No description provided'}
Type: {task.task_type}
Priority: {task.task_priority.value}
Current Progress: {task.progress}%
Input Data: {json.dumps(task.input_data or {}, ensure_ascii=False)}

Analyze this task and provide:
1. What work can be done on this task right now
2. A progress update (as a percentage from {task.progress} to 100)
3. Any output or results from your work
4. Whether the task is complete

Respond in JSON format:
{{
  "work_done": "Description of work completed",
  "new_progress": <number 0-100>,
  "output": {{ "any": "relevant output data" }},
  "is_complete": <boolean>,
  "next_steps": "What remains to be done if not complete"
}}"""


def next_progress(current: int, reported: Any) -> int:
    """Progress never moves backwards; a missing value means +10."""
    try:
        value = int(reported) if reported else current + 10
    except (TypeError, ValueError):
        value = current + 10
    return min(100, max(current, value))


@dataclass(slots=True)
class ProcessResult:
    success: bool
    progress: int
    output: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "progress": self.progress}
        if self.output is not None:
            out["output"] = self.output
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(slots=True)
class SweepSummary:
    processed: int
    skipped: int
    results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"processed": self.processed, "skipped": self.skipped, "results": self.results}


class TaskProcessor:
    def __init__(
            self,
            tasks: TaskRepo,
            notifications: NotificationSink,
            llm: LLMClient,
            *,
            user_batch_limit: int = 10,
            sweep_batch_limit: int = 20,
            user_cooldown_seconds: float = 30.0,
            sweep_cooldown_seconds: float = 60.0,
            max_errors: int = 5,
            inter_task_delay_seconds: float = 0.5,
            retry_delay_seconds: float = 1.0,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._tasks = tasks
        self._notifications = notifications
        self._llm = llm
        self._user_batch_limit = int(user_batch_limit)
        self._sweep_batch_limit = int(sweep_batch_limit)
        self._user_cooldown = float(user_cooldown_seconds)
        self._sweep_cooldown = float(sweep_cooldown_seconds)
        self._max_errors = int(max_errors)
        self._delay = float(inter_task_delay_seconds)
        self._retry_delay = float(retry_delay_seconds)
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Any, tasks: TaskRepo, notifications: NotificationSink, llm: LLMClient) -> "TaskProcessor":
        return cls(
            tasks,
            notifications,
            llm,
            user_batch_limit=getattr(settings, "user_batch_limit", 10),
            sweep_batch_limit=getattr(settings, "sweep_batch_limit", 20),
            user_cooldown_seconds=getattr(settings, "user_cooldown_seconds", 30.0),
            sweep_cooldown_seconds=getattr(settings, "sweep_cooldown_seconds", 60.0),
            max_errors=getattr(settings, "max_task_errors", 5),
            inter_task_delay_seconds=getattr(settings, "sweep_task_delay_seconds", 0.5),
            retry_delay_seconds=getattr(settings, "llm_retry_delay_seconds", 1.0),
        )

    # ---- single task ----

    def _ask_model(self, task: QueueTask) -> dict[str, Any]:
        content = with_retry(
            lambda: self._llm.complete(
                [{"role": "user", "content": build_task_prompt(task)}],
                system_prompt=PROCESSOR_SYSTEM_PROMPT,
                temperature=0.3,
            ),
            max_retries=3,
            delay_seconds=self._retry_delay,
            sleep=self._sleep,
        )
        result = extract_json_object(content)
        if result is None:
            raise ValueError("Failed to parse AI response")
        return result

    def process_task(self, task: QueueTask) -> ProcessResult:
        logger.info("Processing task: %s - %s", task.id, task.task_title)
        try:
            result = self._ask_model(task)

            new_progress = next_progress(task.progress, result.get("new_progress"))
            is_complete = bool(result.get("is_complete")) or new_progress >= 100
            now = self._clock()

            model_output = result.get("output")
            output_data = {
                **task.output_data,
                "last_work": result.get("work_done"),
                "next_steps": result.get("next_steps"),
                **(model_output if isinstance(model_output, dict) else {}),
                "processed_at": now,
            }

            updates: dict[str, Any] = {"progress": new_progress, "output_data": output_data}
            if is_complete:
                updates["status"] = TaskStatus.COMPLETED
                updates["completed_at"] = now
            if task.started_at is None:
                updates["started_at"] = now

            self._tasks.update_task(task.id, **updates)

            if is_complete:
                self._notifications.send_notification(
                    user_id=task.user_id,
                    notification_type="update",
                    title=f"Task Completed: {task.task_title}",
                    message=str(result.get("work_done") or "Task has been completed successfully."),
                    priority="high" if task.task_priority == TaskPriority.CRITICAL else "normal",
                    source_agent_name="Atlas",
                    related_entity_type="task",
                    related_entity_id=task.id,
                    metadata={"task_id": task.id, "output": model_output},
                )
                logger.info("Task %s -> completed", task.id)

            return ProcessResult(success=True, progress=new_progress, output=result)

        except Exception as e:
            logger.exception("Error processing task %s", task.id)
            message = str(e) or e.__class__.__name__
            try:
                self._tasks.update_task(
                    task.id,
                    input_data={
                        **task.input_data,
                        "last_error": message,
                        "error_count": task.error_count + 1,
                    },
                )
            except Exception:
                logger.exception("Failed to record processing error task_id=%s", task.id)
            return ProcessResult(success=False, progress=task.progress, error=message)

    def process_task_by_id(self, task_id: str) -> ProcessResult:
        task = self._tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return self.process_task(task)

    # ---- batches ----

    def _recently_processed(self, task: QueueTask, cooldown: float) -> bool:
        last = task.processed_at
        return last is not None and (self._clock() - last) < cooldown

    def process_user_tasks(self, user_id: str) -> dict[str, Any]:
        """Open tasks of one user, highest priority first."""
        tasks = self._tasks.list_open_tasks(user_id=user_id, limit=self._user_batch_limit, by_priority=True)
        results: list[dict[str, Any]] = []
        for task in tasks:
            if self._recently_processed(task, self._user_cooldown):
                results.append({"id": task.id, "skipped": True, "reason": "recently_processed"})
                continue
            results.append({"id": task.id, **self.process_task(task).to_dict()})
        return {"processed": len(results), "results": results}

    def background_sweep(self) -> SweepSummary:
        """Open tasks across all users, oldest first."""
        tasks = self._tasks.list_open_tasks(limit=self._sweep_batch_limit)
        results: list[dict[str, Any]] = []
        for task in tasks:
            if task.error_count >= self._max_errors:
                self._tasks.update_task(task.id, status=TaskStatus.FAILED)
                logger.warning("Task %s -> failed (error_count=%d)", task.id, task.error_count)
                results.append({"id": task.id, "failed": True, "reason": "max_errors"})
                continue

            if self._recently_processed(task, self._sweep_cooldown):
                results.append({"id": task.id, "skipped": True, "reason": "cooldown"})
                continue

            results.append({"id": task.id, **self.process_task(task).to_dict()})
            if self._delay > 0:
                self._sleep(self._delay)

        skipped = sum(1 for r in results if r.get("skipped"))
        return SweepSummary(processed=len(results) - skipped, skipped=skipped, results=results)
