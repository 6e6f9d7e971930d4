# src/atlas_os/assistant/assistant.py

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Any

from ..agents.agent_models import Agent
from ..agents.agent_store import AgentStore
from ..core.ports import LLMClient
from ..core.results import filter_valid_uuids
from ..llm.errors import LLMError
from ..llm.parsing import extract_json_object
from .conversation_store import ConversationStore

logger = logging.getLogger(__name__)

CHAT_SYSTEM_PROMPT = (
    "You are Atlas, an expert AI assistant with memory of past conversations. "
    "Be helpful, concise, and personalized."
)
SYNTHESIS_SYSTEM_PROMPT = "You are Atlas, an agent synthesis assistant. Always respond with valid JSON."

CHAT_CONTEXT_TURNS = 30
SYNTHESIS_CONTEXT_TURNS = 10
MATCH_THRESHOLD = 0.5
MATCH_COUNT = 10


def build_chat_prompt(query: str, context: str) -> str:
    return f"""You are Atlas, an intelligent AI assistant. You help users manage their agents, search for information, analyze data, and automate tasks.

Use the conversation history below to maintain context and provide helpful, personalized responses. Reference past conversations when relevant to show continuity.
{context}
Current user message: {query}

Respond naturally and helpfully. If the user references something from a previous conversation, acknowledge it. Be concise but thorough."""


def build_synthesis_prompt(agents: list[Agent], requirements: str | None, context: str) -> str:
    if agents:
        lines = "\n".join(
            f"- {a.name} ({a.sector.value}): {a.description or 'No description'}" for a in agents
        )
        agents_list = f"Existing Agents to merge:\n{lines}"
    else:
        agents_list = "No existing agents specified. Create a new agent from scratch based on the requirements."
    context_block = f"Use this conversation context to better understand user needs:{context}" if context else ""

    return f"""Create a new synthesized agent based on the requirements.
{context_block}
{agents_list}

User Requirements: {requirements or 'Create a general-purpose task management agent'}

Generate a JSON response with:
{{
  "name": "synthesized agent name",
  "sector": "one of: FINANCE, BIOTECH, SECURITY, DATA, CREATIVE, UTILITY",
  "description": "detailed description",
  "capabilities": ["capability1", "capability2"],
  "code_artifact": "TypeScript code for the agent"
}}"""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class AtlasAssistant:
    """Chat with conversation memory, agent search and agent synthesis."""

    def __init__(self, conversations: ConversationStore, agents: AgentStore, llm: LLMClient) -> None:
        self._conversations = conversations
        self._agents = agents
        self._llm = llm

    def chat(self, user_id: str, query: str | None, *, session_id: str | None = None) -> dict[str, Any]:
        if not query or not query.strip():
            raise ValueError("query is required for chat")

        context = self._conversations.conversation_context(user_id, session_id=session_id, limit=CHAT_CONTEXT_TURNS)
        response = self._llm.complete(
            [{"role": "user", "content": build_chat_prompt(query, context)}],
            system_prompt=CHAT_SYSTEM_PROMPT,
        )

        self._conversations.add_message(user_id=user_id, session_id=session_id, role="user", content=query)
        self._conversations.add_message(user_id=user_id, session_id=session_id, role="assistant", content=response)
        return {"response": response, "hasContext": len(context) > 0}

    def get_conversation_history(
            self,
            user_id: str,
            *,
            session_id: str | None = None,
            limit: int = 50,
    ) -> dict[str, Any]:
        history = self._conversations.get_history(user_id, session_id=session_id, limit=limit)
        return {"history": [m.to_dict() for m in history]}

    def search(self, query: str | None) -> dict[str, Any]:
        if not query or not query.strip():
            raise ValueError("query is required for search")

        try:
            query_vec = self._llm.embed(query)
        except LLMError as e:
            logger.info("Embedding not available, using text search fallback: %s", e)
            agents = self._agents.search_agents_text(query, limit=MATCH_COUNT)
            return {"agents": [a.to_dict() for a in agents], "searchMethod": "text"}

        scored: list[tuple[float, Agent]] = []
        for agent in self._agents.agents_with_embeddings():
            similarity = cosine_similarity(query_vec, agent.embedding or [])
            if similarity > MATCH_THRESHOLD:
                scored.append((similarity, agent))
        scored.sort(key=lambda pair: pair[0], reverse=True)

        return {
            "agents": [{**a.to_dict(), "similarity": round(s, 4)} for s, a in scored[:MATCH_COUNT]],
            "searchMethod": "semantic",
        }

    def synthesize(
            self,
            user_id: str,
            agent_ids: Any,
            requirements: str | None,
            *,
            session_id: str | None = None,
    ) -> dict[str, Any]:
        context = self._conversations.conversation_context(
            user_id, session_id=session_id, limit=SYNTHESIS_CONTEXT_TURNS
        )
        valid_ids = filter_valid_uuids(agent_ids) if isinstance(agent_ids, list) else []
        agents = self._agents.get_agents(valid_ids) if valid_ids else []

        content = self._llm.complete(
            [{"role": "user", "content": build_synthesis_prompt(agents, requirements, context)}],
            system_prompt=SYNTHESIS_SYSTEM_PROMPT,
        )
        synthesized = extract_json_object(content)
        if synthesized is None:
            logger.warning("Failed to parse synthesized agent")

        return {
            "synthesizedAgent": synthesized,
            "sourceAgents": [a.to_dict() for a in agents],
        }
