# src/atlas_os/agents/bulk.py

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .agent_models import AgentSector
from .agent_store import AgentStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImportReport:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"imported": self.imported, "skipped": self.skipped, "errors": self.errors}


def import_agents(store: AgentStore, records: Iterable[dict[str, Any]]) -> ImportReport:
    """Insert agent records; rows without a name or with an unknown sector are skipped."""
    report = ImportReport()
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            report.skipped += 1
            report.errors.append(f"row {i}: not an object")
            continue
        name = str(rec.get("name") or "").strip()
        if not name:
            report.skipped += 1
            report.errors.append(f"row {i}: name is required")
            continue
        try:
            sector = AgentSector.parse(rec.get("sector"))
        except ValueError as e:
            report.skipped += 1
            report.errors.append(f"row {i}: {e}")
            continue

        try:
            store.add_agent(
                name=name,
                sector=sector,
                agent_class=rec.get("class") or rec.get("agent_class") or "BASIC",
                status=rec.get("status") or "ACTIVE",
                designation=rec.get("designation"),
                description=rec.get("description"),
                capabilities=rec.get("capabilities") or [],
                success_rate=float(rec.get("success_rate") or 0.0),
                total_tasks_completed=int(rec.get("total_tasks_completed") or 0),
                specialization_level=rec.get("specialization_level") or "novice",
                learning_velocity=float(rec.get("learning_velocity") or 0.5),
                hierarchy_tier=rec.get("hierarchy_tier") or "worker",
                seraphim_id=rec.get("seraphim_id"),
                agent_id=rec.get("id"),
            )
        except sqlite3.IntegrityError as e:
            report.skipped += 1
            report.errors.append(f"row {i}: {e}")
            continue
        report.imported += 1

    logger.info("Agent import: imported=%d skipped=%d", report.imported, report.skipped)
    return report


def export_agents(store: AgentStore, *, limit: int = 1000) -> list[dict[str, Any]]:
    return [a.to_dict() for a in store.list_agents(limit=limit)]


def load_agent_file(path: str | Path) -> list[dict[str, Any]]:
    """Read a JSON file holding a list of agents (or {"agents": [...]})."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("agents", [])
    if not isinstance(data, list):
        raise ValueError("Agent file must contain a JSON list")
    return data
