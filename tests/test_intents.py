# tests/test_intents.py

from __future__ import annotations

from atlas_os.agents.intents import UNKNOWN_INTENT, parse_intent


def test_pattern_and_keywords() -> None:
    intent = parse_intent("Please schedule a meeting with Ana")
    assert intent.task_type == "scheduling"
    assert intent.domain == "calendar"
    assert intent.matched_keywords == ("meeting",)
    assert intent.confidence == 0.95
    assert not intent.requires_llm


def test_keywords_alone_match() -> None:
    intent = parse_intent("what is our budget vs revenue")
    assert intent.task_type == "financial_analysis"
    assert intent.matched_keywords == ("budget", "revenue")


def test_word_boundaries() -> None:
    # "plan" must not match inside "airplane"
    assert parse_intent("airplane").task_type == "unknown"


def test_unknown_and_empty() -> None:
    assert parse_intent("hello there") == UNKNOWN_INTENT
    assert parse_intent("   ") == UNKNOWN_INTENT
