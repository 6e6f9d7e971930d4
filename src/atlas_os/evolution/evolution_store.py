# src/atlas_os/evolution/evolution_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)


class EvolutionNotFoundError(LookupError):
    pass


class EvolutionStatus(StrEnum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    APPLIED = "applied"
    REJECTED = "rejected"
    ROLLED_BACK = "rolled_back"

    @classmethod
    def from_db(cls, raw: str | None) -> EvolutionStatus:
        try:
            return cls(raw or "")
        except ValueError:
            return cls.PROPOSED


@dataclass(slots=True)
class CodeEvolution:
    id: str
    user_id: str
    entity_type: str
    entity_name: str
    evolution_type: str
    status: EvolutionStatus
    created_at: float
    entity_id: str | None = None
    source_code: str | None = None
    evolved_code: str | None = None
    sonic_signature: dict[str, Any] = field(default_factory=dict)
    improvement_analysis: dict[str, Any] = field(default_factory=dict)
    compatibility_score: float = 0.0
    performance_impact: dict[str, Any] = field(default_factory=dict)
    risk_assessment: dict[str, Any] = field(default_factory=dict)
    integration_plan: dict[str, Any] = field(default_factory=dict)
    rollback_available: bool = True
    rollback_data: dict[str, Any] | None = None
    applied_at: float | None = None
    applied_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "evolution_type": self.evolution_type,
            "evolution_status": self.status.value,
            "source_code": self.source_code,
            "evolved_code": self.evolved_code,
            "sonic_signature": self.sonic_signature,
            "improvement_analysis": self.improvement_analysis,
            "compatibility_score": self.compatibility_score,
            "performance_impact": self.performance_impact,
            "risk_assessment": self.risk_assessment,
            "integration_plan": self.integration_plan,
            "rollback_available": self.rollback_available,
            "rollback_data": self.rollback_data,
            "applied_at": self.applied_at,
            "applied_by": self.applied_by,
            "created_at": self.created_at,
        }


class EvolutionStore(SQLiteStore):
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS code_evolutions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            entity_type TEXT NOT NULL DEFAULT 'agent',
            entity_id TEXT,
            entity_name TEXT NOT NULL,
            sonic_signature TEXT NOT NULL DEFAULT '{}',
            evolution_type TEXT NOT NULL DEFAULT 'improvement',
            evolution_status TEXT NOT NULL DEFAULT 'proposed',
            source_code TEXT,
            evolved_code TEXT,
            improvement_analysis TEXT NOT NULL DEFAULT '{}',
            compatibility_score REAL NOT NULL DEFAULT 0,
            performance_impact TEXT NOT NULL DEFAULT '{}',
            risk_assessment TEXT NOT NULL DEFAULT '{}',
            integration_plan TEXT NOT NULL DEFAULT '{}',
            applied_at REAL,
            applied_by TEXT,
            rollback_available INTEGER NOT NULL DEFAULT 1,
            rollback_data TEXT,
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_code_evolutions_user ON code_evolutions(user_id, created_at)",
    )

    def _row_to_evolution(self, row: sqlite3.Row) -> CodeEvolution:
        rollback = self._json_load(row["rollback_data"])
        return CodeEvolution(
            id=row["id"],
            user_id=row["user_id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            entity_name=row["entity_name"],
            evolution_type=row["evolution_type"],
            status=EvolutionStatus.from_db(row["evolution_status"]),
            source_code=row["source_code"],
            evolved_code=row["evolved_code"],
            sonic_signature=self._json_dict(row["sonic_signature"]),
            improvement_analysis=self._json_dict(row["improvement_analysis"]),
            compatibility_score=float(row["compatibility_score"] or 0.0),
            performance_impact=self._json_dict(row["performance_impact"]),
            risk_assessment=self._json_dict(row["risk_assessment"]),
            integration_plan=self._json_dict(row["integration_plan"]),
            rollback_available=bool(row["rollback_available"]),
            rollback_data=rollback if isinstance(rollback, dict) else None,
            applied_at=row["applied_at"],
            applied_by=row["applied_by"],
            created_at=float(row["created_at"]),
        )

    def add_evolution(
            self,
            *,
            user_id: str,
            entity_type: str,
            entity_name: str,
            evolution_type: str,
            result: dict[str, Any],
            entity_id: str | None = None,
    ) -> CodeEvolution:
        """Store an engine `evolve` result as a proposal."""
        evolution_id = new_id()
        self._execute(
            """
            INSERT INTO code_evolutions(
                id, user_id, entity_type, entity_id, entity_name, sonic_signature,
                evolution_type, evolution_status, source_code, evolved_code,
                improvement_analysis, compatibility_score, performance_impact, risk_assessment,
                integration_plan, rollback_available, rollback_data, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'proposed', ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (
                evolution_id,
                user_id,
                entity_type,
                entity_id,
                entity_name,
                self._json_dump(result.get("sonic_signature") or {}),
                evolution_type,
                result.get("source_code"),
                result.get("evolved_code"),
                self._json_dump(result.get("improvement_analysis") or {}),
                float(result.get("compatibility_score") or 0.0),
                self._json_dump(result.get("performance_impact") or {}),
                self._json_dump(result.get("risk_assessment") or {}),
                self._json_dump(result.get("integration_plan") or {}),
                self._json_dump(result.get("rollback_data")),
                time.time(),
            ),
        )
        return self.require_evolution(evolution_id)

    def get_evolution(self, evolution_id: str, *, user_id: str | None = None) -> CodeEvolution | None:
        sql = "SELECT * FROM code_evolutions WHERE id = ?"
        params: list[Any] = [evolution_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._fetch_one(sql, params)
        return self._row_to_evolution(row) if row else None

    def require_evolution(self, evolution_id: str, *, user_id: str | None = None) -> CodeEvolution:
        evolution = self.get_evolution(evolution_id, user_id=user_id)
        if evolution is None:
            raise EvolutionNotFoundError(f"Evolution not found: {evolution_id}")
        return evolution

    def list_evolutions(self, user_id: str, *, limit: int = 50) -> list[CodeEvolution]:
        rows = self._fetch_all(
            "SELECT * FROM code_evolutions WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, int(limit)),
        )
        return [self._row_to_evolution(r) for r in rows]

    def set_status(
            self,
            evolution_id: str,
            status: EvolutionStatus,
            *,
            user_id: str | None = None,
            applied_by: str | None = None,
    ) -> bool:
        sets = ["evolution_status = ?"]
        params: list[Any] = [status.value]
        if status is EvolutionStatus.APPROVED:
            sets += ["applied_at = ?", "applied_by = ?"]
            params += [time.time(), applied_by]
        sql = f"UPDATE code_evolutions SET {', '.join(sets)} WHERE id = ?"
        params.append(evolution_id)
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        return self._execute(sql, params) == 1
