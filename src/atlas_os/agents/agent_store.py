# src/atlas_os/agents/agent_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id
from .agent_models import (
    Agent,
    AgentClass,
    AgentMemory,
    AgentSector,
    AgentStatus,
    AgentTaskScore,
    HierarchyTier,
    LearningEvent,
    RankedAgent,
)

logger = logging.getLogger(__name__)

SPECIALIZATION_EVENT_THRESHOLD = 0.7
PREFERRED_TASK_THRESHOLD = 0.6
PREFERRED_TASK_LIMIT = 5
EXPERIENCE_CAP = 50


class AgentNotFoundError(LookupError):
    pass


def specialization_score(
        *,
        success_count: int,
        failure_count: int,
        avg_confidence: float,
        avg_user_satisfaction: float | None,
        learning_velocity: float,
) -> float:
    """
    Weighted specialization of an agent for one task type, capped at 1.0.

    success rate 40%, experience (capped at 50 tasks) 30%, confidence 20%,
    satisfaction 10% (0.5 while unrated), boosted by learning velocity.
    """
    total = success_count + failure_count
    if total <= 0:
        return 0.0
    success_rate = success_count / total
    experience = min(1.0, total / EXPERIENCE_CAP)
    satisfaction = 0.5 if avg_user_satisfaction is None else avg_user_satisfaction
    base = success_rate * 0.4 + experience * 0.3 + avg_confidence * 0.2 + satisfaction * 0.1
    return min(1.0, base * (1 + learning_velocity * 0.2))


_AGENT_UPDATABLE = frozenset(
    {
        "name",
        "sector",
        "class",
        "status",
        "designation",
        "description",
        "capabilities",
        "success_rate",
        "total_tasks_completed",
        "specialization_level",
        "learning_velocity",
        "hierarchy_tier",
        "seraphim_id",
    }
)
_AGENT_JSON = frozenset({"capabilities"})


class AgentStore(SQLiteStore):
    """
    Agents and everything they learn: memories, performance records,
    per-task-type specialization scores, learning events, and user rosters.

    Also holds the small account directory (organization plan/industry,
    workspace personas, profile preferences) used for agent allocation.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS sonic_agents (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            sector TEXT NOT NULL,
            class TEXT NOT NULL DEFAULT 'BASIC',
            status TEXT NOT NULL DEFAULT 'ACTIVE',
            designation TEXT,
            description TEXT,
            capabilities TEXT NOT NULL DEFAULT '[]',
            success_rate REAL NOT NULL DEFAULT 0,
            total_tasks_completed INTEGER NOT NULL DEFAULT 0,
            specialization_level TEXT NOT NULL DEFAULT 'novice',
            task_specializations TEXT NOT NULL DEFAULT '{}',
            preferred_task_types TEXT NOT NULL DEFAULT '[]',
            learning_velocity REAL NOT NULL DEFAULT 0.5,
            hierarchy_tier TEXT NOT NULL DEFAULT 'worker',
            seraphim_id TEXT,
            embedding TEXT,
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_agents_status_class ON sonic_agents(status, class)",
        """
        CREATE TABLE IF NOT EXISTS agent_memory (
            id TEXT PRIMARY KEY,
            agent_id TEXT NOT NULL REFERENCES sonic_agents(id) ON DELETE CASCADE,
            user_id TEXT,
            memory_type TEXT NOT NULL,
            content TEXT NOT NULL,
            importance_score REAL NOT NULL DEFAULT 0.5,
            context TEXT NOT NULL DEFAULT '{}',
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_agent_memory_agent ON agent_memory(agent_id, importance_score)",
        """
        CREATE TABLE IF NOT EXISTS agent_performance (
            id TEXT PRIMARY KEY,
            agent_id TEXT NOT NULL REFERENCES sonic_agents(id) ON DELETE CASCADE,
            user_id TEXT,
            task_id TEXT,
            task_type TEXT NOT NULL,
            success INTEGER NOT NULL,
            confidence_score REAL,
            user_satisfaction REAL,
            execution_time_ms INTEGER,
            created_at REAL NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS agent_task_scores (
            agent_id TEXT NOT NULL REFERENCES sonic_agents(id) ON DELETE CASCADE,
            task_type TEXT NOT NULL,
            success_count INTEGER NOT NULL DEFAULT 0,
            failure_count INTEGER NOT NULL DEFAULT 0,
            total_execution_time_ms INTEGER NOT NULL DEFAULT 0,
            avg_confidence REAL NOT NULL DEFAULT 0,
            avg_user_satisfaction REAL,
            satisfaction_count INTEGER NOT NULL DEFAULT 0,
            specialization_score REAL NOT NULL DEFAULT 0,
            last_performed_at REAL,
            PRIMARY KEY (agent_id, task_type)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS agent_learning_events (
            id TEXT PRIMARY KEY,
            agent_id TEXT NOT NULL REFERENCES sonic_agents(id) ON DELETE CASCADE,
            event_type TEXT NOT NULL,
            event_data TEXT NOT NULL DEFAULT '{}',
            impact_score REAL NOT NULL DEFAULT 0,
            created_at REAL NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS user_agents (
            user_id TEXT NOT NULL,
            agent_id TEXT NOT NULL REFERENCES sonic_agents(id) ON DELETE CASCADE,
            assigned_at REAL NOT NULL,
            PRIMARY KEY (user_id, agent_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS organizations (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            plan TEXT NOT NULL DEFAULT 'free',
            industry TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS organization_members (
            org_id TEXT NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            PRIMARY KEY (org_id, user_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS workspace_members (
            workspace_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            assigned_persona TEXT,
            PRIMARY KEY (workspace_id, user_id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS profiles (
            user_id TEXT PRIMARY KEY,
            preferred_persona TEXT
        )
        """,
    )

    def __init__(self, db_path: str | Path = "atlas.sqlite3") -> None:
        super().__init__(db_path)
        logger.info("AgentStore ready db=%s agents=%s", self._db_path, self.count_agents())

    def _row_to_agent(self, row: sqlite3.Row) -> Agent:
        specs = {
            str(k): float(v)
            for k, v in self._json_dict(row["task_specializations"]).items()
            if isinstance(v, (int, float))
        }
        embedding = self._json_load(row["embedding"], None)
        return Agent(
            id=row["id"],
            name=row["name"],
            sector=AgentSector(row["sector"]),
            agent_class=AgentClass.from_db(row["class"]),
            status=AgentStatus.from_db(row["status"]),
            created_at=float(row["created_at"]),
            designation=row["designation"],
            description=row["description"],
            capabilities=[str(c) for c in self._json_list(row["capabilities"])],
            success_rate=float(row["success_rate"] or 0.0),
            total_tasks_completed=int(row["total_tasks_completed"] or 0),
            specialization_level=row["specialization_level"] or "novice",
            task_specializations=specs,
            preferred_task_types=[str(t) for t in self._json_list(row["preferred_task_types"])],
            learning_velocity=float(row["learning_velocity"] if row["learning_velocity"] is not None else 0.5),
            hierarchy_tier=HierarchyTier.from_db(row["hierarchy_tier"]),
            seraphim_id=row["seraphim_id"],
            embedding=[float(x) for x in embedding] if isinstance(embedding, list) else None,
        )

    @staticmethod
    def _row_to_score(row: sqlite3.Row) -> AgentTaskScore:
        return AgentTaskScore(
            agent_id=row["agent_id"],
            task_type=row["task_type"],
            success_count=int(row["success_count"]),
            failure_count=int(row["failure_count"]),
            total_execution_time_ms=int(row["total_execution_time_ms"]),
            avg_confidence=float(row["avg_confidence"]),
            avg_user_satisfaction=(
                float(row["avg_user_satisfaction"]) if row["avg_user_satisfaction"] is not None else None
            ),
            specialization_score=float(row["specialization_score"]),
            last_performed_at=row["last_performed_at"],
        )

    # ---- agents ----

    def count_agents(self) -> int:
        row = self._fetch_one("SELECT COUNT(*) FROM sonic_agents")
        return int(row[0]) if row else 0

    def add_agent(
            self,
            *,
            name: str,
            sector: AgentSector | str,
            agent_class: AgentClass | str = AgentClass.BASIC,
            status: AgentStatus | str = AgentStatus.ACTIVE,
            designation: str | None = None,
            description: str | None = None,
            capabilities: Iterable[str] | None = None,
            success_rate: float = 0.0,
            total_tasks_completed: int = 0,
            specialization_level: str = "novice",
            learning_velocity: float = 0.5,
            hierarchy_tier: HierarchyTier | str = HierarchyTier.WORKER,
            seraphim_id: str | None = None,
            embedding: list[float] | None = None,
            agent_id: str | None = None,
    ) -> Agent:
        if not name or not name.strip():
            raise ValueError("name is required")
        agent_id = agent_id or new_id()
        self._execute(
            """
            INSERT INTO sonic_agents(
                id, name, sector, class, status, designation, description, capabilities,
                success_rate, total_tasks_completed, specialization_level, learning_velocity,
                hierarchy_tier, seraphim_id, embedding, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                agent_id,
                name.strip(),
                AgentSector.parse(str(sector)).value,
                AgentClass.from_db(str(agent_class)).value,
                AgentStatus.from_db(str(status)).value,
                designation,
                description,
                self._json_dump([str(c) for c in capabilities or []]),
                float(max(0.0, min(1.0, success_rate))),
                int(total_tasks_completed),
                specialization_level,
                float(learning_velocity),
                HierarchyTier.from_db(str(hierarchy_tier)).value,
                seraphim_id,
                self._json_dump(embedding) if embedding is not None else None,
                time.time(),
            ),
        )
        return self.require_agent(agent_id)

    def get_agent(self, agent_id: str) -> Agent | None:
        row = self._fetch_one("SELECT * FROM sonic_agents WHERE id = ?", (agent_id,))
        return self._row_to_agent(row) if row else None

    def require_agent(self, agent_id: str) -> Agent:
        agent = self.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(f"Agent not found: {agent_id}")
        return agent

    def get_agents(self, agent_ids: Iterable[str]) -> list[Agent]:
        ids = list(dict.fromkeys(agent_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = self._fetch_all(f"SELECT * FROM sonic_agents WHERE id IN ({placeholders})", ids)
        by_id = {r["id"]: self._row_to_agent(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def list_agents(
            self,
            *,
            status: AgentStatus | None = None,
            classes: Iterable[AgentClass] | None = None,
            sector: AgentSector | None = None,
            limit: int = 50,
    ) -> list[Agent]:
        where: list[str] = []
        params: list[Any] = []
        if status is not None:
            where.append("status = ?")
            params.append(status.value)
        if classes is not None:
            cls_values = [c.value for c in classes]
            if not cls_values:
                return []
            where.append(f"class IN ({','.join('?' for _ in cls_values)})")
            params.extend(cls_values)
        if sector is not None:
            where.append("sector = ?")
            params.append(sector.value)
        sql = "SELECT * FROM sonic_agents"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY created_at ASC LIMIT ?"
        params.append(int(limit))
        return [self._row_to_agent(r) for r in self._fetch_all(sql, params)]

    def update_agent(self, agent_id: str, **fields: Any) -> bool:
        if "agent_class" in fields:
            fields["class"] = fields.pop("agent_class")
        for key in ("sector", "class", "status", "hierarchy_tier"):
            if key in fields and fields[key] is not None:
                fields[key] = str(fields[key])
        sets, params = self._build_update("sonic_agents", fields, allowed=_AGENT_UPDATABLE, json_fields=_AGENT_JSON)
        if not sets:
            return False
        params.append(agent_id)
        return self._execute(f"UPDATE sonic_agents SET {', '.join(sets)} WHERE id = ?", params) == 1

    def set_embedding(self, agent_id: str, embedding: list[float]) -> None:
        self._execute(
            "UPDATE sonic_agents SET embedding = ? WHERE id = ?",
            (self._json_dump([float(x) for x in embedding]), agent_id),
        )

    def agents_with_embeddings(self) -> list[Agent]:
        rows = self._fetch_all("SELECT * FROM sonic_agents WHERE embedding IS NOT NULL AND embedding != 'null'")
        return [self._row_to_agent(r) for r in rows]

    def search_agents_text(self, query: str, *, limit: int = 10) -> list[Agent]:
        """Case-insensitive substring match on name or description."""
        pattern = f"%{query.strip().lower()}%"
        rows = self._fetch_all(
            """
            SELECT * FROM sonic_agents
            WHERE lower(name) LIKE ? OR lower(COALESCE(description, '')) LIKE ?
            ORDER BY name ASC
            LIMIT ?
            """,
            (pattern, pattern, int(limit)),
        )
        return [self._row_to_agent(r) for r in rows]

    def list_workers(self, seraphim_id: str, *, limit: int = 5) -> list[Agent]:
        rows = self._fetch_all(
            """
            SELECT * FROM sonic_agents
            WHERE seraphim_id = ? AND hierarchy_tier = 'worker' AND status != 'DORMANT'
            ORDER BY success_rate DESC, total_tasks_completed DESC
            LIMIT ?
            """,
            (seraphim_id, int(limit)),
        )
        return [self._row_to_agent(r) for r in rows]

    # ---- memory ----

    def add_memory(
            self,
            *,
            agent_id: str,
            memory_type: str,
            content: str,
            user_id: str | None = None,
            importance_score: float = 0.5,
            context: dict[str, Any] | None = None,
    ) -> AgentMemory:
        if not content or not content.strip():
            raise ValueError("content is required")
        memory = AgentMemory(
            id=new_id(),
            agent_id=agent_id,
            user_id=user_id,
            memory_type=memory_type,
            content=content.strip(),
            importance_score=float(max(0.0, min(1.0, importance_score))),
            context=dict(context or {}),
            created_at=time.time(),
        )
        self._execute(
            """
            INSERT INTO agent_memory(id, agent_id, user_id, memory_type, content, importance_score, context, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (memory.id, memory.agent_id, memory.user_id, memory.memory_type, memory.content,
             memory.importance_score, self._json_dump(memory.context), memory.created_at),
        )
        return memory

    def list_memories(
            self,
            agent_id: str,
            *,
            limit: int = 20,
            min_importance: float = 0.0,
            memory_type: str | None = None,
    ) -> list[AgentMemory]:
        sql = "SELECT * FROM agent_memory WHERE agent_id = ? AND importance_score >= ?"
        params: list[Any] = [agent_id, float(min_importance)]
        if memory_type:
            sql += " AND memory_type = ?"
            params.append(memory_type)
        sql += " ORDER BY importance_score DESC, created_at DESC LIMIT ?"
        params.append(int(limit))
        return [
            AgentMemory(
                id=r["id"],
                agent_id=r["agent_id"],
                user_id=r["user_id"],
                memory_type=r["memory_type"],
                content=r["content"],
                importance_score=float(r["importance_score"]),
                context=self._json_dict(r["context"]),
                created_at=float(r["created_at"]),
            )
            for r in self._fetch_all(sql, params)
        ]

    # ---- learning ----

    def add_learning_event(
            self,
            *,
            agent_id: str,
            event_type: str,
            event_data: dict[str, Any] | None = None,
            impact_score: float = 0.0,
            conn: sqlite3.Connection | None = None,
    ) -> str:
        event_id = new_id()
        params = (event_id, agent_id, event_type, self._json_dump(event_data or {}), float(impact_score), time.time())
        sql = """
            INSERT INTO agent_learning_events(id, agent_id, event_type, event_data, impact_score, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """
        if conn is not None:
            conn.execute(sql, params)
        else:
            self._execute(sql, params)
        return event_id

    def list_learning_events(self, agent_id: str, *, limit: int = 20) -> list[LearningEvent]:
        rows = self._fetch_all(
            "SELECT * FROM agent_learning_events WHERE agent_id = ? ORDER BY created_at DESC LIMIT ?",
            (agent_id, int(limit)),
        )
        return [
            LearningEvent(
                id=r["id"],
                agent_id=r["agent_id"],
                event_type=r["event_type"],
                event_data=self._json_dict(r["event_data"]),
                impact_score=float(r["impact_score"]),
                created_at=float(r["created_at"]),
            )
            for r in rows
        ]

    # ---- performance / specialization ----

    def record_performance(
            self,
            *,
            agent_id: str,
            task_type: str,
            success: bool,
            user_id: str | None = None,
            task_id: str | None = None,
            confidence_score: float | None = None,
            user_satisfaction: float | None = None,
            execution_time_ms: int | None = None,
    ) -> AgentTaskScore:
        """
        Insert a performance record and refresh the agent's specialization.

        All writes happen in one transaction: the record, the (agent, task_type)
        score row, the agent's specialization summary and a learning event when
        the score reaches the specialization threshold.
        """
        task_type = (task_type or "general").strip() or "general"
        now = time.time()
        confidence = float(confidence_score or 0.0)

        with self._transaction() as conn:
            agent_row = conn.execute(
                "SELECT learning_velocity FROM sonic_agents WHERE id = ?", (agent_id,)
            ).fetchone()
            if agent_row is None:
                raise AgentNotFoundError(f"Agent not found: {agent_id}")
            velocity = float(agent_row["learning_velocity"] if agent_row["learning_velocity"] is not None else 0.5)

            conn.execute(
                """
                INSERT INTO agent_performance(
                    id, agent_id, user_id, task_id, task_type, success,
                    confidence_score, user_satisfaction, execution_time_ms, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (new_id(), agent_id, user_id, task_id, task_type, int(bool(success)),
                 confidence_score, user_satisfaction, execution_time_ms, now),
            )

            prev = conn.execute(
                "SELECT * FROM agent_task_scores WHERE agent_id = ? AND task_type = ?", (agent_id, task_type)
            ).fetchone()

            if prev is None:
                successes, failures, exec_ms = 0, 0, 0
                avg_conf, avg_sat, sat_count = 0.0, None, 0
            else:
                successes = int(prev["success_count"])
                failures = int(prev["failure_count"])
                exec_ms = int(prev["total_execution_time_ms"])
                avg_conf = float(prev["avg_confidence"])
                avg_sat = float(prev["avg_user_satisfaction"]) if prev["avg_user_satisfaction"] is not None else None
                sat_count = int(prev["satisfaction_count"])

            n = successes + failures
            avg_conf = (avg_conf * n + confidence) / (n + 1)
            if user_satisfaction is not None:
                avg_sat = ((avg_sat or 0.0) * sat_count + float(user_satisfaction)) / (sat_count + 1)
                sat_count += 1
            if success:
                successes += 1
            else:
                failures += 1
            exec_ms += int(execution_time_ms or 0)

            score = specialization_score(
                success_count=successes,
                failure_count=failures,
                avg_confidence=avg_conf,
                avg_user_satisfaction=avg_sat,
                learning_velocity=velocity,
            )

            conn.execute(
                """
                INSERT INTO agent_task_scores(
                    agent_id, task_type, success_count, failure_count, total_execution_time_ms,
                    avg_confidence, avg_user_satisfaction, satisfaction_count, specialization_score, last_performed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(agent_id, task_type) DO UPDATE SET
                    success_count = excluded.success_count,
                    failure_count = excluded.failure_count,
                    total_execution_time_ms = excluded.total_execution_time_ms,
                    avg_confidence = excluded.avg_confidence,
                    avg_user_satisfaction = excluded.avg_user_satisfaction,
                    satisfaction_count = excluded.satisfaction_count,
                    specialization_score = excluded.specialization_score,
                    last_performed_at = excluded.last_performed_at
                """,
                (agent_id, task_type, successes, failures, exec_ms, avg_conf, avg_sat, sat_count, score, now),
            )

            self._refresh_agent_summary(conn, agent_id)

            if score >= SPECIALIZATION_EVENT_THRESHOLD:
                self.add_learning_event(
                    agent_id=agent_id,
                    event_type="specialization_up",
                    event_data={"task_type": task_type, "new_score": score},
                    impact_score=score,
                    conn=conn,
                )

            row = conn.execute(
                "SELECT * FROM agent_task_scores WHERE agent_id = ? AND task_type = ?", (agent_id, task_type)
            ).fetchone()

        logger.debug("Performance recorded agent=%s task_type=%s success=%s score=%.3f", agent_id, task_type, success, score)
        return self._row_to_score(row)

    def _refresh_agent_summary(self, conn: sqlite3.Connection, agent_id: str) -> None:
        scores = conn.execute(
            """
            SELECT task_type, specialization_score FROM agent_task_scores
            WHERE agent_id = ?
            ORDER BY specialization_score DESC
            """,
            (agent_id,),
        ).fetchall()
        specializations = {r["task_type"]: float(r["specialization_score"]) for r in scores if r["specialization_score"] > 0}
        preferred = [
            r["task_type"] for r in scores if r["specialization_score"] >= PREFERRED_TASK_THRESHOLD
        ][:PREFERRED_TASK_LIMIT]

        totals = conn.execute(
            "SELECT COUNT(*) AS n, COALESCE(SUM(success), 0) AS ok FROM agent_performance WHERE agent_id = ?",
            (agent_id,),
        ).fetchone()
        n = int(totals["n"])
        ok = int(totals["ok"])

        conn.execute(
            """
            UPDATE sonic_agents
            SET task_specializations = ?, preferred_task_types = ?,
                success_rate = ?, total_tasks_completed = ?
            WHERE id = ?
            """,
            (self._json_dump(specializations), self._json_dump(preferred), (ok / n) if n else 0.0, ok, agent_id),
        )

    def get_task_scores(self, agent_id: str, *, limit: int = 3) -> list[AgentTaskScore]:
        rows = self._fetch_all(
            """
            SELECT * FROM agent_task_scores WHERE agent_id = ?
            ORDER BY specialization_score DESC LIMIT ?
            """,
            (agent_id, int(limit)),
        )
        return [self._row_to_score(r) for r in rows]

    def find_best_agents_for_task(
            self,
            task_type: str,
            *,
            sector: AgentSector | str | None = None,
            limit: int = 5,
    ) -> list[RankedAgent]:
        """Non-dormant agents ranked by specialization, then success rate, then experience."""
        sql = """
            SELECT sa.id, sa.name, sa.sector, sa.success_rate,
                   COALESCE(ats.specialization_score, 0) AS spec,
                   COALESCE(ats.success_count + ats.failure_count, 0) AS total,
                   COALESCE(ats.avg_confidence, 0) AS avg_conf
            FROM sonic_agents sa
            LEFT JOIN agent_task_scores ats ON ats.agent_id = sa.id AND ats.task_type = ?
            WHERE sa.status != 'DORMANT'
        """
        params: list[Any] = [task_type]
        if sector:
            sql += " AND sa.sector = ?"
            params.append(AgentSector.parse(str(sector)).value)
        sql += " ORDER BY spec DESC, sa.success_rate DESC, sa.total_tasks_completed DESC LIMIT ?"
        params.append(int(limit))
        return [
            RankedAgent(
                agent_id=r["id"],
                agent_name=r["name"],
                sector=r["sector"],
                specialization_score=float(r["spec"]),
                success_rate=float(r["success_rate"] or 0.0),
                total_tasks=int(r["total"]),
                avg_confidence=float(r["avg_conf"]),
            )
            for r in self._fetch_all(sql, params)
        ]

    def list_specialists(self, task_type: str, *, min_score: float, limit: int) -> list[RankedAgent]:
        """Agents whose proven specialization for task_type is at least min_score."""
        rows = self._fetch_all(
            """
            SELECT sa.id, sa.name, sa.sector, sa.success_rate,
                   ats.specialization_score AS spec,
                   ats.success_count + ats.failure_count AS total,
                   ats.avg_confidence AS avg_conf
            FROM agent_task_scores ats
            JOIN sonic_agents sa ON sa.id = ats.agent_id
            WHERE ats.task_type = ? AND ats.specialization_score >= ? AND sa.status != 'DORMANT'
            ORDER BY ats.specialization_score DESC, sa.success_rate DESC
            LIMIT ?
            """,
            (task_type, float(min_score), int(limit)),
        )
        return [
            RankedAgent(
                agent_id=r["id"],
                agent_name=r["name"],
                sector=r["sector"],
                specialization_score=float(r["spec"]),
                success_rate=float(r["success_rate"] or 0.0),
                total_tasks=int(r["total"]),
                avg_confidence=float(r["avg_conf"]),
            )
            for r in rows
        ]

    # ---- user rosters ----

    def assigned_agent_ids(self, user_id: str) -> set[str]:
        rows = self._fetch_all("SELECT agent_id FROM user_agents WHERE user_id = ?", (user_id,))
        return {r["agent_id"] for r in rows}

    def assign_agents_to_user(self, user_id: str, agent_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(agent_ids))
        if not ids:
            return 0
        now = time.time()
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO user_agents(user_id, agent_id, assigned_at) VALUES (?, ?, ?)
                ON CONFLICT(user_id, agent_id) DO NOTHING
                """,
                [(user_id, agent_id, now) for agent_id in ids],
            )
        return len(ids)

    # ---- account directory ----

    def upsert_organization(self, *, org_id: str, name: str, plan: str = "free", industry: str | None = None) -> None:
        self._execute(
            """
            INSERT INTO organizations(id, name, plan, industry) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET name = excluded.name, plan = excluded.plan, industry = excluded.industry
            """,
            (org_id, name, plan, industry),
        )

    def add_organization_member(self, org_id: str, user_id: str) -> None:
        self._execute(
            "INSERT OR IGNORE INTO organization_members(org_id, user_id) VALUES (?, ?)", (org_id, user_id)
        )

    def set_workspace_persona(self, workspace_id: str, user_id: str, persona: str | None) -> None:
        self._execute(
            """
            INSERT INTO workspace_members(workspace_id, user_id, assigned_persona) VALUES (?, ?, ?)
            ON CONFLICT(workspace_id, user_id) DO UPDATE SET assigned_persona = excluded.assigned_persona
            """,
            (workspace_id, user_id, persona),
        )

    def set_preferred_persona(self, user_id: str, persona: str | None) -> None:
        self._execute(
            """
            INSERT INTO profiles(user_id, preferred_persona) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET preferred_persona = excluded.preferred_persona
            """,
            (user_id, persona),
        )

    def get_user_plan(self, user_id: str) -> tuple[str, str]:
        """(plan, industry) of the user's organization; ("free", "default") without one."""
        row = self._fetch_one(
            """
            SELECT o.plan, o.industry FROM organization_members m
            JOIN organizations o ON o.id = m.org_id
            WHERE m.user_id = ?
            LIMIT 1
            """,
            (user_id,),
        )
        if row is None:
            return "free", "default"
        plan = (row["plan"] or "free").strip().lower()
        industry = (row["industry"] or "default").strip().lower() or "default"
        return plan, industry

    def get_workspace_persona(self, workspace_id: str, user_id: str) -> str | None:
        row = self._fetch_one(
            "SELECT assigned_persona FROM workspace_members WHERE workspace_id = ? AND user_id = ?",
            (workspace_id, user_id),
        )
        return row["assigned_persona"] if row and row["assigned_persona"] else None

    def get_preferred_persona(self, user_id: str) -> str | None:
        row = self._fetch_one("SELECT preferred_persona FROM profiles WHERE user_id = ?", (user_id,))
        return row["preferred_persona"] if row and row["preferred_persona"] else None

    # ---- hierarchy ----

    def find_seraphim(self, task_type: str, *, domain: str | None = None) -> str | None:
        """
        Supervising agent for a task: one matching the domain (sector, designation
        or description) or supervising a worker scoring > 0.6 on task_type.
        Falls back to the largest supervisor when nothing matches.
        """
        pool_sql = "(SELECT COUNT(*) FROM sonic_agents w WHERE w.seraphim_id = s.id)"
        pattern = f"%{(domain or '').strip().lower()}%"
        row = self._fetch_one(
            f"""
            SELECT s.id FROM sonic_agents s
            WHERE s.hierarchy_tier = 'seraphim'
              AND (
                ? IS NULL
                OR lower(s.sector) = ?
                OR lower(COALESCE(s.designation, '')) LIKE ?
                OR lower(COALESCE(s.description, '')) LIKE ?
                OR EXISTS (
                    SELECT 1 FROM sonic_agents w
                    JOIN agent_task_scores ats ON ats.agent_id = w.id
                    WHERE w.seraphim_id = s.id
                      AND ats.task_type = ?
                      AND ats.specialization_score > 0.6
                )
              )
            ORDER BY {pool_sql} DESC, s.success_rate DESC
            LIMIT 1
            """,
            (domain or None, (domain or "").strip().lower(), pattern, pattern, task_type),
        )
        if row is None:
            row = self._fetch_one(
                f"SELECT s.id FROM sonic_agents s WHERE s.hierarchy_tier = 'seraphim' ORDER BY {pool_sql} DESC LIMIT 1"
            )
        return row["id"] if row else None
