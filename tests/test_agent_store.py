# tests/test_agent_store.py

from __future__ import annotations

import pytest

from atlas_os.agents.agent_models import AgentSector, AgentStatus, HierarchyTier
from atlas_os.agents.agent_store import AgentNotFoundError, AgentStore, specialization_score


def test_specialization_score_weights() -> None:
    assert specialization_score(
        success_count=0, failure_count=0, avg_confidence=1.0, avg_user_satisfaction=1.0, learning_velocity=1.0
    ) == 0.0

    # 0.4 + 0.3 * 1/50 + 0.2 * 0.9 + 0.1 * 0.5 (unrated), boosted by 1.1
    score = specialization_score(
        success_count=1, failure_count=0, avg_confidence=0.9, avg_user_satisfaction=None, learning_velocity=0.5
    )
    assert score == pytest.approx(0.636 * 1.1)

    capped = specialization_score(
        success_count=50, failure_count=0, avg_confidence=1.0, avg_user_satisfaction=1.0, learning_velocity=1.0
    )
    assert capped == 1.0


def test_add_agent_validates_sector(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Ledger", sector="finance", capabilities=["budgets"])
    assert agent.sector == AgentSector.FINANCE
    assert agent.status == AgentStatus.ACTIVE
    assert agent.capabilities == ["budgets"]
    with pytest.raises(ValueError):
        agent_store.add_agent(name="Nope", sector="astrology")


def test_record_performance_updates_scores_and_summary(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Analyst", sector="DATA")

    first = agent_store.record_performance(agent_id=agent.id, task_type="data_analysis", success=True,
                                           confidence_score=0.8, user_satisfaction=1.0, execution_time_ms=120)
    second = agent_store.record_performance(agent_id=agent.id, task_type="data_analysis", success=False,
                                            confidence_score=0.4, execution_time_ms=80)

    assert first.success_count == 1 and first.failure_count == 0
    assert second.success_count == 1 and second.failure_count == 1
    assert second.avg_confidence == pytest.approx(0.6)
    assert second.avg_user_satisfaction == pytest.approx(1.0)
    assert second.total_execution_time_ms == 200

    refreshed = agent_store.require_agent(agent.id)
    assert refreshed.success_rate == pytest.approx(0.5)
    assert refreshed.total_tasks_completed == 1
    assert refreshed.task_specializations["data_analysis"] == pytest.approx(second.specialization_score)


def test_high_score_emits_learning_event(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Closer", sector="FINANCE", learning_velocity=1.0)
    for _ in range(10):
        score = agent_store.record_performance(agent_id=agent.id, task_type="budgeting", success=True,
                                               confidence_score=1.0, user_satisfaction=1.0)
    assert score.specialization_score >= 0.7
    events = agent_store.list_learning_events(agent.id)
    assert events and events[0].event_type == "specialization_up"
    assert "budgeting" in agent_store.require_agent(agent.id).preferred_task_types


def test_record_performance_unknown_agent(agent_store: AgentStore) -> None:
    with pytest.raises(AgentNotFoundError):
        agent_store.record_performance(agent_id="missing", task_type="x", success=True)


def test_best_agents_skip_dormant(agent_store: AgentStore) -> None:
    good = agent_store.add_agent(name="Good", sector="DATA")
    agent_store.add_agent(name="Sleepy", sector="DATA", status="DORMANT")
    agent_store.record_performance(agent_id=good.id, task_type="research", success=True, confidence_score=0.9)

    ranked = agent_store.find_best_agents_for_task("research")
    assert [r.agent_name for r in ranked] == ["Good"]
    assert ranked[0].specialization_score > 0


def test_memories_filter_and_order(agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Mem", sector="UTILITY")
    agent_store.add_memory(agent_id=agent.id, memory_type="interaction", content="low", importance_score=0.2)
    agent_store.add_memory(agent_id=agent.id, memory_type="learning", content="high", importance_score=0.9)

    assert [m.content for m in agent_store.list_memories(agent.id)] == ["high", "low"]
    assert [m.content for m in agent_store.list_memories(agent.id, min_importance=0.5)] == ["high"]
    assert [m.content for m in agent_store.list_memories(agent.id, memory_type="interaction")] == ["low"]
    with pytest.raises(ValueError):
        agent_store.add_memory(agent_id=agent.id, memory_type="x", content="  ")


def test_find_seraphim_by_domain_and_fallback(agent_store: AgentStore) -> None:
    fin = agent_store.add_agent(name="Treasurer", sector="FINANCE", hierarchy_tier=HierarchyTier.SERAPHIM)
    sec = agent_store.add_agent(name="Warden", sector="SECURITY", hierarchy_tier="seraphim",
                                designation="Threat watch")
    agent_store.add_agent(name="Guard", sector="SECURITY", seraphim_id=sec.id)

    assert agent_store.find_seraphim("budgeting", domain="finance") == fin.id
    assert agent_store.find_seraphim("x", domain="threat") == sec.id
    # no match: the supervisor with the most workers
    assert agent_store.find_seraphim("x", domain="gardening") == sec.id
    assert [w.name for w in agent_store.list_workers(sec.id)] == ["Guard"]


def test_text_search(agent_store: AgentStore) -> None:
    agent_store.add_agent(name="Budget Bot", sector="FINANCE", description="Tracks spending")
    agent_store.add_agent(name="Painter", sector="CREATIVE", description="Makes BUDGET posters")
    agent_store.add_agent(name="Other", sector="DATA")

    assert [a.name for a in agent_store.search_agents_text("budget")] == ["Budget Bot", "Painter"]
