# tests/test_assistant.py

from __future__ import annotations

import json
import uuid

import pytest

from atlas_os.agents.agent_store import AgentStore
from atlas_os.assistant.assistant import AtlasAssistant, cosine_similarity
from atlas_os.assistant.conversation_store import HISTORY_HEADER, ConversationStore

from .fakes import FakeLLMClient


@pytest.fixture()
def assistant(conversation_store: ConversationStore, agent_store: AgentStore, llm: FakeLLMClient) -> AtlasAssistant:
    return AtlasAssistant(conversation_store, agent_store, llm)


def test_cosine_similarity_edges() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([], []) == 0.0
    assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_chat_stores_both_turns_and_uses_history(assistant: AtlasAssistant, llm: FakeLLMClient) -> None:
    llm.queue("Hello!", "You said hi before.")

    first = assistant.chat("u1", "hi", session_id="s1")
    assert first == {"response": "Hello!", "hasContext": False}

    second = assistant.chat("u1", "what did I say?", session_id="s1")
    assert second["hasContext"] is True
    assert HISTORY_HEADER in llm.calls[1].prompt
    assert "User: hi\nAtlas: Hello!" in llm.calls[1].prompt

    history = assistant.get_conversation_history("u1", session_id="s1")["history"]
    assert [m["content"] for m in history] == [
        "You said hi before.",
        "what did I say?",
        "Hello!",
        "hi",
    ]
    assert assistant.get_conversation_history("u1", session_id="other")["history"] == []


def test_chat_requires_query(assistant: AtlasAssistant, llm: FakeLLMClient) -> None:
    with pytest.raises(ValueError, match="query is required"):
        assistant.chat("u1", "  ")
    assert llm.calls == []


def test_search_falls_back_to_text_without_embeddings(assistant: AtlasAssistant, agent_store: AgentStore) -> None:
    agent_store.add_agent(name="Ledger Keeper", sector="FINANCE", description="Tracks budgets")
    agent_store.add_agent(name="Painter", sector="CREATIVE", description="Makes art")

    out = assistant.search("BUDGET")

    assert out["searchMethod"] == "text"
    assert [a["name"] for a in out["agents"]] == ["Ledger Keeper"]


def test_search_ranks_by_similarity_above_threshold(
        assistant: AtlasAssistant,
        agent_store: AgentStore,
        llm: FakeLLMClient,
) -> None:
    agent_store.add_agent(name="Close", sector="DATA", embedding=[1.0, 0.1, 0.0])
    agent_store.add_agent(name="Closest", sector="DATA", embedding=[1.0, 0.0, 0.0])
    agent_store.add_agent(name="Far", sector="DATA", embedding=[0.0, 1.0, 0.0])
    agent_store.add_agent(name="Plain", sector="DATA")
    llm.embeddings = {"numbers": [1.0, 0.0, 0.0]}

    out = assistant.search("numbers")

    assert out["searchMethod"] == "semantic"
    assert [a["name"] for a in out["agents"]] == ["Closest", "Close"]
    assert out["agents"][0]["similarity"] == 1.0


def test_synthesize_merges_valid_agents(
        assistant: AtlasAssistant,
        agent_store: AgentStore,
        llm: FakeLLMClient,
) -> None:
    source = agent_store.add_agent(name="Analyst", sector="DATA", description="Crunches numbers")
    llm.queue(json.dumps({"name": "Super Analyst", "sector": "DATA", "capabilities": ["charts"]}))

    out = assistant.synthesize("u1", [source.id, "not-a-uuid", str(uuid.uuid4())], "Faster reports")

    assert out["synthesizedAgent"]["name"] == "Super Analyst"
    assert [a["id"] for a in out["sourceAgents"]] == [source.id]
    prompt = llm.calls[0].prompt
    assert "- Analyst (DATA): Crunches numbers" in prompt
    assert "User Requirements: Faster reports" in prompt


def test_synthesize_from_scratch_tolerates_bad_json(assistant: AtlasAssistant, llm: FakeLLMClient) -> None:
    llm.queue("Sorry, no JSON today")

    out = assistant.synthesize("u1", None, None)

    assert out == {"synthesizedAgent": None, "sourceAgents": []}
    assert "Create a new agent from scratch" in llm.calls[0].prompt
    assert "Create a general-purpose task management agent" in llm.calls[0].prompt
