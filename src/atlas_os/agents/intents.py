# src/atlas_os/agents/intents.py

"""Deterministic intent parsing (the first routing tier).

A request is matched against a small keyword table. A hit on the pattern
word beats keyword hits, which beat base confidence; each keyword hit adds
0.05 confidence. Words match at word starts ("plan" matches "planning").
No match at all means the request needs the LLM.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class IntentMapping:
    pattern: str
    task_type: str
    confidence: float
    domain: str
    keywords: tuple[str, ...]


INTENT_MAPPINGS: tuple[IntentMapping, ...] = (
    IntentMapping("schedule", "scheduling", 0.9, "calendar", ("meeting", "appointment", "book", "reserve")),
    IntentMapping("email", "email_composition", 0.9, "communications", ("send", "write", "compose", "reply")),
    IntentMapping("analyze", "data_analysis", 0.85, "analytics", ("report", "insight", "trend", "pattern")),
    IntentMapping("research", "research", 0.85, "knowledge", ("find", "look up", "search", "investigate")),
    IntentMapping("summarize", "summarization", 0.9, "knowledge", ("brief", "overview", "digest", "recap")),
    IntentMapping("calculate", "financial_analysis", 0.9, "finance", ("budget", "expense", "revenue", "cost")),
    IntentMapping("create", "content_creation", 0.8, "creative", ("design", "generate", "make", "build")),
    IntentMapping("review", "document_review", 0.85, "legal", ("contract", "agreement", "terms", "policy")),
    IntentMapping("plan", "strategic_planning", 0.85, "strategy", ("roadmap", "strategy", "goal", "objective")),
    IntentMapping("automate", "workflow_automation", 0.9, "automation", ("workflow", "trigger", "process", "routine")),
    IntentMapping("monitor", "monitoring", 0.85, "operations", ("track", "watch", "alert", "notify")),
    IntentMapping("optimize", "optimization", 0.85, "performance", ("improve", "enhance", "boost", "streamline")),
)

KEYWORD_BONUS = 0.05
INTENT_CONFIDENCE_THRESHOLD = 0.7


@dataclass(slots=True, frozen=True)
class ParsedIntent:
    task_type: str
    confidence: float
    domain: str | None
    matched_keywords: tuple[str, ...]
    requires_llm: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_type": self.task_type,
            "confidence": self.confidence,
            "domain": self.domain,
            "matched_keywords": list(self.matched_keywords),
            "requires_llm": self.requires_llm,
        }


UNKNOWN_INTENT = ParsedIntent(
    task_type="unknown",
    confidence=0.0,
    domain=None,
    matched_keywords=(),
    requires_llm=True,
)


def _contains(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}", text) is not None


def parse_intent(query: str, mappings: tuple[IntentMapping, ...] = INTENT_MAPPINGS) -> ParsedIntent:
    text = (query or "").lower()
    if not text.strip():
        return UNKNOWN_INTENT

    best: tuple[tuple[int, int, float], IntentMapping, tuple[str, ...]] | None = None
    for m in mappings:
        pattern_hit = _contains(text, m.pattern)
        hits = tuple(k for k in m.keywords if _contains(text, k))
        if not pattern_hit and not hits:
            continue
        rank = (int(pattern_hit), len(hits), m.confidence)
        if best is None or rank > best[0]:
            best = (rank, m, hits)

    if best is None:
        return UNKNOWN_INTENT

    _, mapping, hits = best
    return ParsedIntent(
        task_type=mapping.task_type,
        confidence=round(min(1.0, mapping.confidence + len(hits) * KEYWORD_BONUS), 4),
        domain=mapping.domain,
        matched_keywords=hits,
        requires_llm=False,
    )
