# src/atlas_os/tasks/assignment.py

from __future__ import annotations

"""
Task assignment: the orchestrator hands queue tasks to agents.

Atlas calls these internally; users never pick agents through this module
directly except via assign_task_to_agents (user-directed mode).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..agents.agent_store import AgentStore
from ..agents.orchestration import AgentOrchestrator
from ..core.results import filter_valid_uuids
from .task_models import OrchestrationMode, TaskAssignment, TaskPriority, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)

MAX_AUTO_AGENTS = 3
MAX_WORKERS = 5
DEFAULT_KNOWLEDGE_IMPORTANCE = 0.7


@dataclass(slots=True)
class AssignmentResult:
    success: bool
    message: str
    assignments: list[TaskAssignment] = field(default_factory=list)
    task_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "assignments": [a.to_dict() for a in self.assignments],
            "taskId": self.task_id,
        }


@dataclass(slots=True, frozen=True)
class HierarchyRoute:
    seraphim_id: str | None
    worker_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"seraphimId": self.seraphim_id, "workerIds": self.worker_ids}


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class TaskAssigner:
    def __init__(self, tasks: TaskStore, agents: AgentStore, orchestrator: AgentOrchestrator) -> None:
        self._tasks = tasks
        self._agents = agents
        self._orchestrator = orchestrator

    def auto_assign_task(
            self,
            user_id: str,
            *,
            title: str,
            description: str = "",
            task_type: str | None = None,
            priority: TaskPriority | str = TaskPriority.MEDIUM,
    ) -> AssignmentResult:
        """
        Let the orchestrator pick agents and queue the task with the top three.

        LLM failures propagate; "no agents" is a normal unsuccessful result.
        """
        if not title or not title.strip():
            raise ValueError("title is required")

        outcome = self._orchestrator.orchestrate(
            f"{title}: {description}",
            user_id=user_id,
            task_type=task_type,
        )
        recs = outcome.recommended_agents
        if not recs:
            return AssignmentResult(success=False, message="No suitable agents found")

        top = recs[:MAX_AUTO_AGENTS]
        plan_text = str((outcome.plan or {}).get("orchestration_plan") or "")
        effective_type = task_type or "assistance"
        task = self._tasks.add_task(
            user_id=user_id,
            task_title=title,
            task_description=description,
            task_type=effective_type,
            task_priority=priority,
            status=TaskStatus.PENDING,
            orchestration_mode=OrchestrationMode.AUTOMATIC,
            assigned_agents=[str(r.get("agent_id")) for r in top if r.get("agent_id")],
            agent_suggestions=recs,
            input_data={"auto_assigned": True, "orchestration_plan": plan_text},
        )

        now = time.time()
        assignments = [
            TaskAssignment(
                task_id=task.id,
                task_title=task.task_title,
                task_type=effective_type,
                agent_id=str(r.get("agent_id") or ""),
                agent_name=str(r.get("agent_name") or ""),
                confidence=_float(r.get("confidence")),
                specialization_match=str(r.get("specialization_match") or "medium"),
                reasoning=str(r.get("reasoning") or ""),
                status="assigned",
                assigned_at=now,
            )
            for r in top
        ]
        logger.info("Task %s auto-assigned to %d agents (%s)", task.id, len(assignments), outcome.routing_tier)
        return AssignmentResult(success=True, message=plan_text, assignments=assignments, task_id=task.id)

    def assign_task_to_agents(
            self,
            user_id: str,
            task_id: str,
            agent_ids: list[str],
            *,
            task_type: str | None = None,
    ) -> bool:
        if not agent_ids:
            return False
        updated = self._tasks.update_task(
            task_id,
            user_id=user_id,
            assigned_agents=list(agent_ids),
            orchestration_mode=OrchestrationMode.USER_DIRECTED,
            status=TaskStatus.PENDING,
        )
        if not updated:
            return False

        suffix = f" ({task_type})" if task_type else ""
        for agent_id in filter_valid_uuids(agent_ids):
            if self._agents.get_agent(agent_id) is None:
                continue
            self._agents.add_memory(
                agent_id=agent_id,
                user_id=user_id,
                memory_type="task_assignment",
                content=f"Manually assigned to task {task_id}{suffix}",
                importance_score=0.6,
                context={"task_id": task_id, "task_type": task_type, "manual_assignment": True},
            )
        return True

    def fetch_recent_assignments(self, user_id: str, *, limit: int = 20) -> list[TaskAssignment]:
        out: list[TaskAssignment] = []
        for task in self._tasks.list_assigned_tasks(user_id, limit=limit):
            assigned = set(task.assigned_agents)
            for s in task.agent_suggestions:
                if s.get("agent_id") not in assigned:
                    continue
                out.append(
                    TaskAssignment(
                        task_id=task.id,
                        task_title=task.task_title,
                        task_type=task.task_type,
                        agent_id=str(s["agent_id"]),
                        agent_name=str(s.get("agent_name") or ""),
                        confidence=_float(s.get("confidence")),
                        specialization_match=str(s.get("specialization_match") or "medium"),
                        reasoning=str(s.get("reasoning") or s.get("reason") or ""),
                        status=task.status.value,
                        assigned_at=task.created_at,
                    )
                )
        return out

    def record_task_completion(
            self,
            user_id: str,
            *,
            task_id: str,
            agent_id: str,
            task_type: str,
            success: bool,
            confidence_score: float | None = None,
            execution_time_ms: int | None = None,
            user_satisfaction: float | None = None,
    ) -> bool:
        confidence = 0.5 if confidence_score is None else confidence_score
        self._agents.record_performance(
            agent_id=agent_id,
            user_id=user_id,
            task_id=task_id,
            task_type=task_type,
            success=success,
            confidence_score=confidence,
            execution_time_ms=execution_time_ms,
            user_satisfaction=user_satisfaction,
        )
        return self._tasks.update_task(
            task_id,
            user_id=user_id,
            status=TaskStatus.COMPLETED if success else TaskStatus.FAILED,
            completed_at=time.time(),
            output_data={
                "success": success,
                "confidence": confidence_score,
                "execution_time_ms": execution_time_ms,
            },
        )

    def route_task_through_hierarchy(self, task_type: str, *, domain: str | None = None) -> HierarchyRoute:
        seraphim_id = self._agents.find_seraphim(task_type, domain=domain)
        if seraphim_id is None:
            logger.warning("No supervising agent found for task_type=%s domain=%s", task_type, domain)
            return HierarchyRoute(seraphim_id=None, worker_ids=[])
        workers = self._agents.list_workers(seraphim_id, limit=MAX_WORKERS)
        return HierarchyRoute(seraphim_id=seraphim_id, worker_ids=[w.id for w in workers])

    def transfer_knowledge(
            self,
            source_agent_id: str,
            target_agent_ids: list[str],
            *,
            min_importance: float = DEFAULT_KNOWLEDGE_IMPORTANCE,
    ) -> int:
        """Copy the source agent's important memories to each target. Returns memories shared."""
        source = self._agents.require_agent(source_agent_id)
        memories = self._agents.list_memories(source.id, limit=50, min_importance=min_importance)
        targets = [t for t in self._agents.get_agents(target_agent_ids) if t.id != source.id]

        shared = 0
        for target in targets:
            for mem in memories:
                self._agents.add_memory(
                    agent_id=target.id,
                    user_id=mem.user_id,
                    memory_type="crystallized_knowledge",
                    content=mem.content,
                    importance_score=mem.importance_score,
                    context={**mem.context, "source_agent_id": source.id, "source_memory_id": mem.id},
                )
                shared += 1
        logger.info("Knowledge transfer from %s: %d memories to %d agents", source.id, shared, len(targets))
        return shared
