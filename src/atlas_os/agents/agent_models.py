# src/atlas_os/agents/agent_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class AgentSector(StrEnum):
    FINANCE = "FINANCE"
    BIOTECH = "BIOTECH"
    SECURITY = "SECURITY"
    DATA = "DATA"
    CREATIVE = "CREATIVE"
    UTILITY = "UTILITY"

    @classmethod
    def parse(cls, raw: str | None) -> AgentSector:
        """Strict: unknown sectors are a validation error."""
        try:
            return cls(str(raw or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown agent sector: {raw!r}") from None


class AgentClass(StrEnum):
    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
    ELITE = "ELITE"
    SINGULARITY = "SINGULARITY"

    @classmethod
    def from_db(cls, raw: str | None) -> AgentClass:
        try:
            return cls(str(raw or "").strip().upper())
        except ValueError:
            return cls.BASIC


class AgentStatus(StrEnum):
    ACTIVE = "ACTIVE"
    IDLE = "IDLE"
    DORMANT = "DORMANT"

    @classmethod
    def from_db(cls, raw: str | None) -> AgentStatus:
        try:
            return cls(str(raw or "").strip().upper())
        except ValueError:
            return cls.IDLE


class HierarchyTier(StrEnum):
    SERAPHIM = "seraphim"
    WORKER = "worker"

    @classmethod
    def from_db(cls, raw: str | None) -> HierarchyTier:
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.WORKER


@dataclass(slots=True)
class Agent:
    id: str
    name: str
    sector: AgentSector
    agent_class: AgentClass
    status: AgentStatus
    created_at: float

    designation: str | None = None
    description: str | None = None
    capabilities: list[str] = field(default_factory=list)
    success_rate: float = 0.0
    total_tasks_completed: int = 0
    specialization_level: str = "novice"
    task_specializations: dict[str, float] = field(default_factory=dict)
    preferred_task_types: list[str] = field(default_factory=list)
    learning_velocity: float = 0.5
    hierarchy_tier: HierarchyTier = HierarchyTier.WORKER
    seraphim_id: str | None = None
    embedding: list[float] | None = None

    def to_dict(self, *, include_embedding: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "sector": self.sector.value,
            "class": self.agent_class.value,
            "status": self.status.value,
            "designation": self.designation,
            "description": self.description,
            "capabilities": self.capabilities,
            "success_rate": self.success_rate,
            "total_tasks_completed": self.total_tasks_completed,
            "specialization_level": self.specialization_level,
            "task_specializations": self.task_specializations,
            "preferred_task_types": self.preferred_task_types,
            "learning_velocity": self.learning_velocity,
            "hierarchy_tier": self.hierarchy_tier.value,
            "seraphim_id": self.seraphim_id,
            "created_at": self.created_at,
        }
        if include_embedding:
            out["embedding"] = self.embedding
        return out


@dataclass(slots=True, frozen=True)
class AgentMemory:
    id: str
    agent_id: str
    user_id: str | None
    memory_type: str
    content: str
    importance_score: float
    context: dict[str, Any]
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "user_id": self.user_id,
            "memory_type": self.memory_type,
            "content": self.content,
            "importance_score": self.importance_score,
            "context": self.context,
            "created_at": self.created_at,
        }


@dataclass(slots=True, frozen=True)
class AgentTaskScore:
    agent_id: str
    task_type: str
    success_count: int
    failure_count: int
    total_execution_time_ms: int
    avg_confidence: float
    avg_user_satisfaction: float | None
    specialization_score: float
    last_performed_at: float | None

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "task_type": self.task_type,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_execution_time_ms": self.total_execution_time_ms,
            "avg_confidence": self.avg_confidence,
            "avg_user_satisfaction": self.avg_user_satisfaction,
            "specialization_score": self.specialization_score,
            "last_performed_at": self.last_performed_at,
        }


@dataclass(slots=True, frozen=True)
class RankedAgent:
    """Row returned by specialist lookups (best agents for a task type)."""

    agent_id: str
    agent_name: str
    sector: str
    specialization_score: float
    success_rate: float
    total_tasks: int
    avg_confidence: float
    confidence: float = 0.0
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "sector": self.sector,
            "specialization_score": self.specialization_score,
            "success_rate": self.success_rate,
            "total_tasks": self.total_tasks,
            "avg_confidence": self.avg_confidence,
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(slots=True, frozen=True)
class LearningEvent:
    id: str
    agent_id: str
    event_type: str
    event_data: dict[str, Any]
    impact_score: float
    created_at: float
