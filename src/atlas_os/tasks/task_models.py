# src/atlas_os/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Queue task lifecycle.

    pending -> in_progress -> completed
    Any open task may end as failed (too many processing errors) or cancelled.
    awaiting_approval parks a task until a user confirms the agent plan.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


OPEN_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


class OrchestrationMode(StrEnum):
    AUTOMATIC = "automatic"
    USER_DIRECTED = "user_directed"
    HYBRID = "hybrid"
    MANUAL = "manual"

    @classmethod
    def from_db(cls, raw: str | None) -> OrchestrationMode:
        if not raw:
            return cls.MANUAL
        try:
            return cls(raw)
        except ValueError:
            return cls.MANUAL


@dataclass(slots=True)
class QueueTask:
    id: str
    user_id: str
    task_type: str
    task_title: str
    task_description: str | None
    task_priority: TaskPriority
    status: TaskStatus
    progress: int
    orchestration_mode: OrchestrationMode
    created_at: float
    updated_at: float

    input_data: dict[str, Any] = field(default_factory=dict)
    output_data: dict[str, Any] = field(default_factory=dict)
    assigned_agents: list[str] = field(default_factory=list)
    agent_suggestions: list[dict[str, Any]] = field(default_factory=list)

    started_at: float | None = None
    completed_at: float | None = None
    due_date: float | None = None

    @property
    def error_count(self) -> int:
        try:
            return int(self.input_data.get("error_count") or 0)
        except (TypeError, ValueError):
            return 0

    @property
    def processed_at(self) -> float | None:
        raw = self.output_data.get("processed_at")
        return float(raw) if isinstance(raw, (int, float)) else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "task_type": self.task_type,
            "task_title": self.task_title,
            "task_description": self.task_description,
            "task_priority": self.task_priority.value,
            "status": self.status.value,
            "progress": self.progress,
            "orchestration_mode": self.orchestration_mode.value,
            "input_data": self.input_data,
            "output_data": self.output_data,
            "assigned_agents": self.assigned_agents,
            "agent_suggestions": self.agent_suggestions,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "due_date": self.due_date,
        }


@dataclass(slots=True, frozen=True)
class TaskAssignment:
    """One agent attached to one queue task."""

    task_id: str
    task_title: str
    task_type: str
    agent_id: str
    agent_name: str
    confidence: float
    specialization_match: str
    reasoning: str
    status: str
    assigned_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "taskType": self.task_type,
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "confidence": self.confidence,
            "specializationMatch": self.specialization_match,
            "reasoning": self.reasoning,
            "status": self.status,
            "assignedAt": self.assigned_at,
        }
