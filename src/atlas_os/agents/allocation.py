# src/atlas_os/agents/allocation.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .agent_models import Agent, AgentClass, AgentStatus
from .agent_store import AgentStore

logger = logging.getLogger(__name__)

# Plan -> agent classes the plan may use.
TIER_CLASS_ACCESS: dict[str, tuple[AgentClass, ...]] = {
    "free": (AgentClass.BASIC,),
    "personal": (AgentClass.BASIC, AgentClass.ADVANCED),
    "pro": (AgentClass.BASIC, AgentClass.ADVANCED, AgentClass.ELITE),
    "team": (AgentClass.BASIC, AgentClass.ADVANCED, AgentClass.ELITE),
    "enterprise": (AgentClass.BASIC, AgentClass.ADVANCED, AgentClass.ELITE, AgentClass.SINGULARITY),
}

# Persona -> (primary sectors, secondary sectors).
PERSONA_SECTORS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "CEO": (("FINANCE", "DATA"), ("SECURITY", "CREATIVE")),
    "CFO": (("FINANCE", "DATA"), ("SECURITY",)),
    "COO": (("DATA", "UTILITY"), ("SECURITY", "FINANCE")),
    "CMO": (("CREATIVE", "DATA"), ("UTILITY",)),
    "CTO": (("DATA", "SECURITY"), ("UTILITY", "BIOTECH")),
    "CHRO": (("DATA", "UTILITY"), ("CREATIVE",)),
    "CSO": (("SECURITY", "DATA"), ("FINANCE",)),
    "CIO": (("DATA", "SECURITY"), ("UTILITY",)),
    "default": (("DATA", "UTILITY"), ("FINANCE", "CREATIVE", "SECURITY", "BIOTECH")),
}

INDUSTRY_SECTOR_BOOST: dict[str, tuple[str, ...]] = {
    "finance": ("FINANCE", "SECURITY", "DATA"),
    "healthcare": ("BIOTECH", "DATA", "SECURITY"),
    "technology": ("DATA", "SECURITY", "UTILITY"),
    "retail": ("DATA", "CREATIVE", "FINANCE"),
    "manufacturing": ("UTILITY", "DATA", "FINANCE"),
    "media": ("CREATIVE", "DATA", "UTILITY"),
    "consulting": ("DATA", "FINANCE", "UTILITY"),
    "pharma": ("BIOTECH", "DATA", "SECURITY"),
    "default": ("DATA", "UTILITY"),
}

CLASS_BONUS: dict[AgentClass, int] = {
    AgentClass.BASIC: 10,
    AgentClass.ADVANCED: 20,
    AgentClass.ELITE: 30,
    AgentClass.SINGULARITY: 40,
}

CANDIDATE_POOL = 50


@dataclass(slots=True, frozen=True)
class AllocatedAgent:
    agent: Agent
    relevance_score: int
    relevance_reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.agent.id,
            "name": self.agent.name,
            "sector": self.agent.sector.value,
            "class": self.agent.agent_class.value,
            "designation": self.agent.designation,
            "description": self.agent.description,
            "capabilities": self.agent.capabilities,
            "relevanceScore": self.relevance_score,
            "relevanceReason": self.relevance_reason,
        }


@dataclass(slots=True)
class AllocationResult:
    recommendations: list[AllocatedAgent]
    tier: str
    allowed_classes: tuple[AgentClass, ...]
    persona: str
    industry: str
    primary_sectors: tuple[str, ...]
    auto_assigned: int = 0
    sector_scores: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "context": {
                "tier": self.tier,
                "allowedClasses": [c.value for c in self.allowed_classes],
                "persona": self.persona,
                "industry": self.industry,
                "primarySectors": list(self.primary_sectors),
            },
            "autoAssigned": self.auto_assigned,
        }


def sector_scores(persona: str, industry: str) -> dict[str, int]:
    primary, secondary = PERSONA_SECTORS.get(persona.upper(), PERSONA_SECTORS["default"])
    boost = INDUSTRY_SECTOR_BOOST.get(industry, INDUSTRY_SECTOR_BOOST["default"])

    scores: dict[str, int] = {}
    for sector in primary:
        scores[sector] = scores.get(sector, 0) + 100
    for sector in secondary:
        scores[sector] = scores.get(sector, 0) + 50
    for i, sector in enumerate(boost):
        scores[sector] = scores.get(sector, 0) + (30 - i * 5)
    return scores


def relevance_reason(sector: str, persona: str, industry: str) -> str:
    primary, secondary = PERSONA_SECTORS.get(persona.upper(), PERSONA_SECTORS["default"])
    if sector in primary:
        return f"Primary {persona} expertise"
    if sector in secondary:
        return f"Supports {persona} objectives"
    if sector in INDUSTRY_SECTOR_BOOST.get(industry, INDUSTRY_SECTOR_BOOST["default"]):
        return f"{industry} industry specialist"
    return "General capability match"


class AgentAllocator:
    """Recommends (and optionally assigns) agents for a user's plan, persona and industry."""

    def __init__(self, store: AgentStore) -> None:
        self._store = store

    def resolve_persona(self, user_id: str, *, persona: str | None = None, workspace_id: str | None = None) -> str:
        if persona:
            return persona
        resolved = "default"
        if workspace_id:
            resolved = self._store.get_workspace_persona(workspace_id, user_id) or resolved
        if resolved == "default":
            resolved = self._store.get_preferred_persona(user_id) or resolved
        return resolved

    def allocate(
            self,
            user_id: str,
            *,
            persona: str | None = None,
            workspace_id: str | None = None,
            auto_assign: bool = False,
            limit: int = 5,
    ) -> AllocationResult:
        if not user_id:
            raise ValueError("userId is required")
        limit = max(1, int(limit))

        tier, industry = self._store.get_user_plan(user_id)
        allowed = TIER_CLASS_ACCESS.get(tier, TIER_CLASS_ACCESS["free"])
        chosen_persona = self.resolve_persona(user_id, persona=persona, workspace_id=workspace_id)
        scores = sector_scores(chosen_persona, industry)
        logger.info("Allocating agents user=%s tier=%s persona=%s industry=%s", user_id, tier, chosen_persona, industry)

        candidates = self._store.list_agents(status=AgentStatus.ACTIVE, classes=allowed, limit=CANDIDATE_POOL)
        if len(candidates) < limit:
            candidates += self._store.list_agents(
                status=AgentStatus.IDLE,
                classes=allowed,
                limit=CANDIDATE_POOL - len(candidates),
            )

        assigned = self._store.assigned_agent_ids(user_id)
        ranked = sorted(
            (
                AllocatedAgent(
                    agent=a,
                    relevance_score=scores.get(a.sector.value, 0) + CLASS_BONUS.get(a.agent_class, 0),
                    relevance_reason=relevance_reason(a.sector.value, chosen_persona, industry),
                )
                for a in candidates
                if a.id not in assigned
            ),
            key=lambda r: r.relevance_score,
            reverse=True,
        )[:limit]

        auto_assigned = 0
        if auto_assign and ranked:
            auto_assigned = self._store.assign_agents_to_user(user_id, [r.agent.id for r in ranked])
            logger.info("Auto-assigned %d agents to user=%s", auto_assigned, user_id)

        primary, _ = PERSONA_SECTORS.get(chosen_persona.upper(), PERSONA_SECTORS["default"])
        return AllocationResult(
            recommendations=ranked,
            tier=tier,
            allowed_classes=allowed,
            persona=chosen_persona,
            industry=industry,
            primary_sectors=primary,
            auto_assigned=auto_assigned,
            sector_scores=scores,
        )
