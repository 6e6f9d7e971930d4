# tests/test_orchestration.py

from __future__ import annotations

import json

import pytest

from atlas_os.agents.agent_store import AgentStore
from atlas_os.agents.orchestration import AgentOrchestrator, deterministic_route, specialization_match
from atlas_os.llm.errors import LLMRateLimitError

from .fakes import FakeLLMClient


def _make_specialist(store: AgentStore, name: str, task_type: str, runs: int = 10):
    agent = store.add_agent(name=name, sector="DATA", learning_velocity=1.0)
    for _ in range(runs):
        store.record_performance(agent_id=agent.id, task_type=task_type, success=True,
                                 confidence_score=1.0, user_satisfaction=1.0)
    return agent


def test_specialization_match_bands() -> None:
    assert specialization_match(0.85) == "high"
    assert specialization_match(0.5) == "medium"
    assert specialization_match(0.1) == "low"


def test_tier1_bypasses_llm(agent_store: AgentStore) -> None:
    agent = _make_specialist(agent_store, "Scheduler", "scheduling")
    llm = FakeLLMClient()

    outcome = AgentOrchestrator(agent_store, llm).orchestrate("schedule a meeting for Monday")

    assert outcome.routing_tier == "tier1"
    assert outcome.task_type == "scheduling"
    assert llm.calls == []
    rec = outcome.recommended_agents[0]
    assert rec["agent_id"] == agent.id
    assert rec["specialization_match"] == "high"
    assert outcome.plan["llm_bypassed"] is True
    body = outcome.to_dict()
    assert body["routingTier"] == "tier1" and body["success"] is True


def test_partial_match_is_tier2_and_asks_llm(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Junior", sector="DATA")
    agent_store.record_performance(agent_id=agent.id, task_type="research", success=False, confidence_score=0.2)

    route = deterministic_route(agent_store, "research")
    assert route.requires_llm_fallback
    assert route.agents[0].reason.startswith("Tier 2")

    llm = FakeLLMClient(json.dumps({"recommended_agents": [], "orchestration_plan": "p", "task_type": "research"}))
    outcome = AgentOrchestrator(agent_store, llm).orchestrate("dig into this", task_type="research")
    assert outcome.routing_tier == "tier2"
    assert "PRE-RANKED SPECIALISTS" in llm.calls[0].prompt
    assert outcome.plan["routing_tier"] == "tier2"


def test_tier3_stores_interaction_memories(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Generalist", sector="UTILITY")
    plan = {
        "recommended_agents": [
            {"agent_id": agent.id, "role": "helper", "confidence": 0.85, "specialization_match": "none"},
            {"agent_id": "not-a-uuid", "role": "ghost", "confidence": 0.9},
        ],
        "orchestration_plan": "Generalist helps",
        "task_type": "general_help",
        "learning_opportunity": "more practice",
    }
    llm = FakeLLMClient(f"Here you go:\n```json\n{json.dumps(plan)}\n```")

    outcome = AgentOrchestrator(agent_store, llm).orchestrate(
        "hello there", user_id="u1", conversation_context="User: hi"
    )

    assert outcome.routing_tier == "tier3"
    assert outcome.task_type == "general_help"
    assert outcome.available_agents == 1
    assert "conversation history" in llm.calls[0].prompt
    (memory,) = agent_store.list_memories(agent.id)
    assert memory.memory_type == "interaction"
    assert memory.content.startswith('Assigned to "general_help" task: hello there')
    assert agent_store.list_learning_events(agent.id)[0].event_type == "skill_gained"


def test_llm_errors_propagate(agent_store: AgentStore) -> None:
    llm = FakeLLMClient(LLMRateLimitError("slow down"))
    with pytest.raises(LLMRateLimitError):
        AgentOrchestrator(agent_store, llm).orchestrate("hello there")


def test_record_agent_performance_adds_memory(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Worker", sector="DATA")
    orchestrator = AgentOrchestrator(agent_store, FakeLLMClient())

    orchestrator.record_agent_performance(agent.id, "etl", False, user_id="u1", error_type="timeout")
    score = orchestrator.record_agent_performance(agent.id, "etl", True, confidence_score=0.9)

    assert score.success_count == 1 and score.failure_count == 1
    memories = agent_store.list_memories(agent.id)
    assert memories[0].memory_type == "learning"
    assert memories[0].content == 'Task "etl": Failed - timeout'
    assert memories[0].importance_score == pytest.approx(0.8)
    assert memories[1].content == 'Task "etl": Completed successfully'
