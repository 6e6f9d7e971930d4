# tests/test_assignment.py

from __future__ import annotations

import json

from atlas_os.agents.agent_store import AgentStore
from atlas_os.agents.orchestration import AgentOrchestrator
from atlas_os.tasks.assignment import TaskAssigner
from atlas_os.tasks.task_models import OrchestrationMode, TaskStatus
from atlas_os.tasks.task_store import TaskStore

from .fakes import FakeLLMClient


def _assigner(task_store: TaskStore, agent_store: AgentStore, llm: FakeLLMClient) -> TaskAssigner:
    return TaskAssigner(task_store, agent_store, AgentOrchestrator(agent_store, llm))


def test_auto_assign_queues_task_with_top_three(task_store: TaskStore, agent_store: AgentStore) -> None:
    agents = [agent_store.add_agent(name=f"A{i}", sector="DATA") for i in range(4)]
    plan = {
        "recommended_agents": [
            {"agent_id": a.id, "agent_name": a.name, "confidence": 0.6, "reasoning": "fits"} for a in agents
        ],
        "orchestration_plan": "Split the work",
    }
    llm = FakeLLMClient(json.dumps(plan))

    result = _assigner(task_store, agent_store, llm).auto_assign_task(
        "u1", title="Quarterly numbers", description="collect and chart", priority="high"
    )

    assert result.success
    assert result.message == "Split the work"
    assert len(result.assignments) == 3
    task = task_store.require_task(result.task_id)
    assert task.assigned_agents == [a.id for a in agents[:3]]
    assert task.orchestration_mode == OrchestrationMode.AUTOMATIC
    assert task.task_type == "assistance"
    assert task.input_data["auto_assigned"] is True
    assert len(task.agent_suggestions) == 4


def test_auto_assign_without_recommendations(task_store: TaskStore, agent_store: AgentStore) -> None:
    llm = FakeLLMClient('{"recommended_agents": []}')
    result = _assigner(task_store, agent_store, llm).auto_assign_task("u1", title="Nothing fits")
    assert not result.success
    assert result.message == "No suitable agents found"
    assert task_store.count_tasks() == 0


def test_manual_assignment_and_recent_assignments(task_store: TaskStore, agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Helper", sector="UTILITY")
    task = task_store.add_task(
        user_id="u1",
        task_title="Sort inbox",
        agent_suggestions=[{"agent_id": agent.id, "agent_name": "Helper", "confidence": 0.7}],
    )
    assigner = _assigner(task_store, agent_store, FakeLLMClient())

    assert assigner.assign_task_to_agents("u1", task.id, [agent.id], task_type="email")
    assert not assigner.assign_task_to_agents("u2", task.id, [agent.id])
    assert not assigner.assign_task_to_agents("u1", task.id, [])

    stored = task_store.require_task(task.id)
    assert stored.orchestration_mode == OrchestrationMode.USER_DIRECTED
    (memory,) = agent_store.list_memories(agent.id)
    assert memory.memory_type == "task_assignment"
    assert memory.content == f"Manually assigned to task {task.id} (email)"

    (assignment,) = assigner.fetch_recent_assignments("u1")
    assert assignment.agent_id == agent.id
    assert assignment.to_dict()["taskTitle"] == "Sort inbox"


def test_record_task_completion(task_store: TaskStore, agent_store: AgentStore) -> None:
    agent = agent_store.add_agent(name="Doer", sector="DATA")
    task = task_store.add_task(user_id="u1", task_title="Do it", assigned_agents=[agent.id])
    assigner = _assigner(task_store, agent_store, FakeLLMClient())

    assert assigner.record_task_completion(
        "u1", task_id=task.id, agent_id=agent.id, task_type="chores", success=True, execution_time_ms=50
    )
    stored = task_store.require_task(task.id)
    assert stored.status == TaskStatus.COMPLETED
    assert stored.output_data["execution_time_ms"] == 50
    (score,) = agent_store.get_task_scores(agent.id)
    assert score.task_type == "chores" and score.success_count == 1


def test_hierarchy_route_and_knowledge_transfer(task_store: TaskStore, agent_store: AgentStore) -> None:
    boss = agent_store.add_agent(name="Boss", sector="SECURITY", hierarchy_tier="seraphim")
    w1 = agent_store.add_agent(name="W1", sector="SECURITY", seraphim_id=boss.id)
    w2 = agent_store.add_agent(name="W2", sector="SECURITY", seraphim_id=boss.id)
    assigner = _assigner(task_store, agent_store, FakeLLMClient())

    route = assigner.route_task_through_hierarchy("audit", domain="security")
    assert route.seraphim_id == boss.id
    assert set(route.worker_ids) == {w1.id, w2.id}

    agent_store.add_memory(agent_id=w1.id, memory_type="learning", content="Rotate keys", importance_score=0.9)
    agent_store.add_memory(agent_id=w1.id, memory_type="interaction", content="Said hi", importance_score=0.1)
    shared = assigner.transfer_knowledge(w1.id, [w2.id, w1.id])

    assert shared == 1
    (copied,) = agent_store.list_memories(w2.id)
    assert copied.memory_type == "crystallized_knowledge"
    assert copied.content == "Rotate keys"
    assert copied.context["source_agent_id"] == w1.id


def test_hierarchy_route_without_supervisors(task_store: TaskStore, agent_store: AgentStore) -> None:
    route = _assigner(task_store, agent_store, FakeLLMClient()).route_task_through_hierarchy("x")
    assert route.to_dict() == {"seraphimId": None, "workerIds": []}
