# src/atlas_os/agents/orchestration.py

from __future__ import annotations

"""
Tiered agent orchestration.

Tier 1 is deterministic: parse the intent from keywords, then look up agents
with a proven specialization for that task type. When the top specialist is
confident enough the plan is built without calling the LLM.
Tier 2/3 ask the LLM to pick agents from the roster, with any partial
specialist ranking included in the prompt as a hint.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..core.ports import LLMClient
from ..core.results import is_valid_uuid
from ..llm.parsing import extract_json_object
from .agent_models import Agent, AgentTaskScore, RankedAgent
from .agent_store import AgentStore
from .intents import INTENT_CONFIDENCE_THRESHOLD, parse_intent

logger = logging.getLogger(__name__)

TIER1_THRESHOLD = 0.7
TIER1_LIMIT = 5
APPROVAL_THRESHOLD = 0.9
SKILL_GAINED_THRESHOLD = 0.8
ROSTER_LIMIT = 50

TIER1_REASON = "Tier 1: Deterministic routing via proven specialization"
TIER2_REASON = "Tier 2: Partial match - LLM refinement recommended"
TIER3_REASON = "Tier 3: Novel task type - LLM required for routing"

ORCHESTRATOR_SYSTEM_PROMPT = (
    "You are Atlas, an expert AI orchestrator. Prioritize specialized agents and "
    "relevant agent memory. Always respond with valid JSON."
)


@dataclass(slots=True)
class RouteResult:
    agents: list[RankedAgent]
    requires_llm_fallback: bool


@dataclass(slots=True)
class OrchestrationOutcome:
    plan: dict[str, Any] | None
    routing_tier: str
    task_type: str | None
    agents: list[RankedAgent] = field(default_factory=list)
    available_agents: int = 0
    routing_time_ms: int = 0

    @property
    def recommended_agents(self) -> list[dict[str, Any]]:
        if not self.plan:
            return []
        recs = self.plan.get("recommended_agents")
        return [r for r in recs if isinstance(r, dict)] if isinstance(recs, list) else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "orchestration": self.plan,
            "agents": [a.to_dict() for a in self.agents],
            "routingTier": self.routing_tier,
            "routingTimeMs": self.routing_time_ms,
            "availableAgents": self.available_agents,
        }


def specialization_match(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.5:
        return "medium"
    return "low"


def deterministic_route(
        store: AgentStore,
        task_type: str,
        *,
        threshold: float = TIER1_THRESHOLD,
        limit: int = TIER1_LIMIT,
) -> RouteResult:
    """Proven specialists when any exist, else the best partial matches flagged for the LLM."""
    specialists = store.list_specialists(task_type, min_score=threshold, limit=limit)
    if specialists:
        return RouteResult(
            agents=[
                RankedAgent(
                    agent_id=s.agent_id,
                    agent_name=s.agent_name,
                    sector=s.sector,
                    specialization_score=s.specialization_score,
                    success_rate=s.success_rate,
                    total_tasks=s.total_tasks,
                    avg_confidence=s.avg_confidence,
                    confidence=min(1.0, s.specialization_score * 0.7 + s.success_rate * 0.3),
                    reason=TIER1_REASON,
                )
                for s in specialists
            ],
            requires_llm_fallback=False,
        )

    partial = store.find_best_agents_for_task(task_type, limit=limit)
    best_score = max((p.specialization_score for p in partial), default=0.0)
    reason = TIER2_REASON if best_score > 0 else TIER3_REASON
    return RouteResult(
        agents=[
            RankedAgent(
                agent_id=p.agent_id,
                agent_name=p.agent_name,
                sector=p.sector,
                specialization_score=p.specialization_score,
                success_rate=p.success_rate,
                total_tasks=p.total_tasks,
                avg_confidence=p.avg_confidence,
                confidence=p.specialization_score if p.specialization_score > 0 else (p.success_rate * 0.5 or 0.3),
                reason=reason,
            )
            for p in partial
        ],
        requires_llm_fallback=True,
    )


def _tier1_plan(task_type: str, agents: list[RankedAgent]) -> dict[str, Any]:
    return {
        "recommended_agents": [
            {
                "agent_id": a.agent_id,
                "agent_name": a.agent_name,
                "role": f"{a.sector} specialist for {task_type}",
                "confidence": a.confidence,
                "requires_approval": a.confidence < APPROVAL_THRESHOLD,
                "reasoning": a.reason,
                "specialization_match": specialization_match(a.specialization_score),
            }
            for a in agents
        ],
        "orchestration_plan": (
            f"Tier 1 deterministic routing: {len(agents)} pre-qualified specialists "
            "assigned based on proven track record"
        ),
        "task_type": task_type,
        "estimated_duration": "instant",
        "learning_opportunity": f"Reinforce {task_type} specialization",
        "routing_tier": "tier1",
        "llm_bypassed": True,
    }


def _describe_agent(agent: Agent) -> str:
    specs = (
        ", ".join(f"{k}:{round(v * 100)}%" for k, v in list(agent.task_specializations.items())[:3])
        or "None yet"
    )
    preferred = ", ".join(agent.preferred_task_types[:3]) or "None"
    return (
        f"- [{agent.id}] {agent.name} ({agent.sector.value}): {agent.description or 'No description'}\n"
        f"  Capabilities: {', '.join(agent.capabilities) or 'None listed'}\n"
        f"  Level: {agent.specialization_level} | Tasks: {agent.total_tasks_completed} | "
        f"Success: {round(agent.success_rate * 100)}%\n"
        f"  Specializations: {specs} | Preferred Tasks: {preferred} | "
        f"Learning Velocity: {agent.learning_velocity}"
    )


def build_orchestration_prompt(
        *,
        query: str,
        task_type: str | None,
        roster: list[Agent],
        ranked: list[RankedAgent],
        memory_lines: list[str],
        conversation_context: str,
) -> str:
    parts = [
        "You are Atlas, an AI orchestrator. Analyze the following user request and "
        "determine which agents should be engaged.",
    ]
    if conversation_context:
        parts.append(f"Use this conversation history for context:\n{conversation_context}")
    if memory_lines:
        parts.append("=== Agent Memory ===\n" + "\n".join(memory_lines) + "\n=== End Agent Memory ===")
    if ranked and task_type:
        lines = [
            f"{i + 1}. {a.agent_name} [{a.agent_id}] - Specialization: {round(a.specialization_score * 100)}%, "
            f"Success: {round(a.success_rate * 100)}%, Tasks: {a.total_tasks}"
            for i, a in enumerate(ranked)
        ]
        parts.append(f'PRE-RANKED SPECIALISTS for "{task_type}":\n' + "\n".join(lines))

    parts.append(f"Current User Request: {query}")
    if task_type:
        parts.append(f"Detected Task Type: {task_type}")
    parts.append(
        "Available Agents (with performance metrics):\n"
        + ("\n".join(_describe_agent(a) for a in roster) or "(none)")
    )
    parts.append(
        """SELECTION CRITERIA (in order):
1. Use PRE-RANKED SPECIALISTS if provided
2. Prefer higher specialization scores for the detected task type
3. Prefer agents with relevant memory
4. Prefer higher learning velocity for novel tasks
5. Success rate and experience as baseline qualifiers

Respond with a JSON object:
{
  "recommended_agents": [
    {
      "agent_id": "uuid",
      "agent_name": "name",
      "role": "what this agent will do",
      "confidence": 0.0-1.0,
      "requires_approval": true/false,
      "reasoning": "why this agent was selected",
      "specialization_match": "high|medium|low|none"
    }
  ],
  "orchestration_plan": "brief description of how agents will work together",
  "task_type": "specific task type for specialization tracking",
  "estimated_duration": "time estimate",
  "learning_opportunity": "what agents will learn from this task"
}"""
    )
    return "\n\n".join(parts)


class AgentOrchestrator:
    def __init__(self, store: AgentStore, llm: LLMClient) -> None:
        self._store = store
        self._llm = llm

    def find_best_agents_for_task(self, task_type: str, *, sector: str | None = None, limit: int = 5) -> list[RankedAgent]:
        return self._store.find_best_agents_for_task(task_type, sector=sector, limit=limit)

    def orchestrate(
            self,
            query: str,
            *,
            user_id: str | None = None,
            task_type: str | None = None,
            conversation_context: str = "",
    ) -> OrchestrationOutcome:
        """
        Pick agents for a request.

        Raises LLMError subclasses when the LLM tier is needed and the gateway fails.
        """
        t0 = time.monotonic()
        detected = task_type
        if not detected and query:
            intent = parse_intent(query)
            if not intent.requires_llm and intent.confidence >= INTENT_CONFIDENCE_THRESHOLD:
                detected = intent.task_type
                logger.info("Tier 1: intent parsed as %s (%.0f%%)", detected, intent.confidence * 100)

        tier = "tier3"
        route: RouteResult | None = None
        if detected:
            route = deterministic_route(self._store, detected)
            top = route.agents[0] if route.agents else None
            if top is not None and not route.requires_llm_fallback and top.confidence >= TIER1_THRESHOLD:
                elapsed = int((time.monotonic() - t0) * 1000)
                plan = _tier1_plan(detected, route.agents)
                plan["routing_time_ms"] = elapsed
                logger.info("Tier 1: %d specialists for %s, LLM bypassed", len(route.agents), detected)
                return OrchestrationOutcome(
                    plan=plan,
                    routing_tier="tier1",
                    task_type=detected,
                    agents=route.agents,
                    routing_time_ms=elapsed,
                )
            if top is not None and top.specialization_score > 0:
                tier = "tier2"

        ranked = list(route.agents) if route else []
        roster = self._store.list_agents(limit=ROSTER_LIMIT)

        memory_lines: list[str] = []
        focus = [a for a in roster if any(r.agent_id == a.id for r in ranked)] or sorted(
            roster, key=lambda a: a.success_rate, reverse=True
        )
        for agent in focus[:5]:
            for mem in self._store.list_memories(agent.id, limit=3):
                memory_lines.append(f"[{agent.name}] [{mem.memory_type}] {mem.content}")

        prompt = build_orchestration_prompt(
            query=query,
            task_type=detected,
            roster=roster,
            ranked=ranked,
            memory_lines=memory_lines,
            conversation_context=conversation_context,
        )
        content = self._llm.complete(
            [{"role": "user", "content": prompt}],
            system_prompt=ORCHESTRATOR_SYSTEM_PROMPT,
        )
        plan = extract_json_object(content)
        if plan is None:
            logger.warning("Failed to parse orchestration plan (tier=%s)", tier)
        else:
            plan.setdefault("routing_tier", tier)
            plan.setdefault("llm_bypassed", False)

        outcome = OrchestrationOutcome(
            plan=plan,
            routing_tier=tier,
            task_type=(plan or {}).get("task_type") or detected,
            agents=ranked,
            available_agents=len(roster),
            routing_time_ms=int((time.monotonic() - t0) * 1000),
        )
        if user_id:
            self._remember_recommendations(outcome, user_id=user_id, query=query)
        return outcome

    def _remember_recommendations(self, outcome: OrchestrationOutcome, *, user_id: str, query: str) -> None:
        task_type = outcome.task_type or "general"
        learning = (outcome.plan or {}).get("learning_opportunity")
        for rec in outcome.recommended_agents[:3]:
            agent_id = rec.get("agent_id")
            if not is_valid_uuid(agent_id) or self._store.get_agent(agent_id) is None:
                continue
            try:
                confidence = float(rec.get("confidence") or 0.5)
            except (TypeError, ValueError):
                confidence = 0.5
            match = rec.get("specialization_match") or "unrated"
            try:
                self._store.add_memory(
                    agent_id=agent_id,
                    user_id=user_id,
                    memory_type="interaction",
                    content=(
                        f'Assigned to "{task_type}" task: {(query or "orchestration")[:100]}. '
                        f"Role: {rec.get('role')}. Match: {match}"
                    ),
                    importance_score=confidence,
                    context={
                        "task_type": task_type,
                        "confidence": confidence,
                        "specialization_match": match,
                        "learning_opportunity": learning,
                    },
                )
                if confidence >= SKILL_GAINED_THRESHOLD:
                    self._store.add_learning_event(
                        agent_id=agent_id,
                        event_type="skill_gained",
                        event_data={"task_type": task_type, "confidence": confidence, "role": rec.get("role")},
                        impact_score=confidence,
                    )
            except Exception:
                logger.warning("Failed to store agent memory for %s", agent_id, exc_info=True)

    def record_agent_performance(
            self,
            agent_id: str,
            task_type: str,
            success: bool,
            *,
            user_id: str | None = None,
            task_description: str | None = None,
            confidence_score: float | None = None,
            execution_time_ms: int | None = None,
            error_type: str | None = None,
    ) -> AgentTaskScore:
        """Record an outcome and keep it as an agent memory; failures weigh more."""
        score = self._store.record_performance(
            agent_id=agent_id,
            user_id=user_id,
            task_type=task_type,
            success=success,
            confidence_score=confidence_score,
            execution_time_ms=execution_time_ms,
        )
        outcome = "Completed successfully" if success else "Failed"
        suffix = f" - {error_type}" if error_type else ""
        self._store.add_memory(
            agent_id=agent_id,
            user_id=user_id,
            memory_type="outcome" if success else "learning",
            content=f'Task "{task_type}": {outcome}{suffix}',
            importance_score=0.6 if success else 0.8,
            context={"taskType": task_type, "success": success, "taskDescription": task_description},
        )
        return score
