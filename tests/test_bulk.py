# tests/test_bulk.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from atlas_os.agents.agent_store import AgentStore
from atlas_os.agents.bulk import export_agents, import_agents, load_agent_file


def test_import_reports_skips(agent_store: AgentStore) -> None:
    report = import_agents(
        agent_store,
        [
            {"name": "Ledger", "sector": "finance", "class": "ELITE", "capabilities": ["ledgers"]},
            {"name": "", "sector": "DATA"},
            {"name": "Mystic", "sector": "astrology"},
            "not a record",
        ],
    )
    assert report.imported == 1
    assert report.skipped == 3
    assert any("name is required" in e for e in report.errors)

    (exported,) = export_agents(agent_store)
    assert exported["name"] == "Ledger"
    assert exported["class"] == "ELITE"


def test_duplicate_ids_are_skipped(agent_store: AgentStore) -> None:
    record = {"id": "fixed-id", "name": "One", "sector": "DATA"}
    assert import_agents(agent_store, [record]).imported == 1
    again = import_agents(agent_store, [record])
    assert again.imported == 0 and again.skipped == 1


def test_load_agent_file(tmp_path: Path) -> None:
    wrapped = tmp_path / "agents.json"
    wrapped.write_text(json.dumps({"agents": [{"name": "A", "sector": "DATA"}]}), encoding="utf-8")
    assert load_agent_file(wrapped) == [{"name": "A", "sector": "DATA"}]

    bad = tmp_path / "bad.json"
    bad.write_text('"just a string"', encoding="utf-8")
    with pytest.raises(ValueError):
        load_agent_file(bad)
