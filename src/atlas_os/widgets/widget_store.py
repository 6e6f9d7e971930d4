# src/atlas_os/widgets/widget_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any

from ..core.sqlite_store import SQLiteStore, new_id
from .widget_models import SNAPSHOT_FIELDS, CustomWidget, RegistryEntry, WidgetVersion

logger = logging.getLogger(__name__)


class WidgetNotFoundError(LookupError):
    pass


class VersionNotFoundError(LookupError):
    pass


_WIDGET_UPDATABLE = frozenset(
    {
        "name",
        "widget_type",
        "category",
        "version",
        *SNAPSHOT_FIELDS,
        "security_verified",
        "update_available",
        "update_version",
        "last_update_check",
    }
)
_SNAPSHOT_JSON = frozenset({"config", "ai_capabilities", "data_sources", "style", "layout", "agent_chain"})


class WidgetStore(SQLiteStore):
    """
    Custom widgets, their version history and the per-type update registry.

    Every multi-row write (snapshot + current-flag swap, update + version
    record, rollback) runs in a single transaction, so a widget has at most
    one current version at any time.
    """

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS custom_widgets (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            widget_type TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'general',
            version INTEGER NOT NULL DEFAULT 1,
            config TEXT NOT NULL DEFAULT '{}',
            ai_capabilities TEXT NOT NULL DEFAULT '{}',
            data_sources TEXT NOT NULL DEFAULT '[]',
            style TEXT NOT NULL DEFAULT '{}',
            layout TEXT NOT NULL DEFAULT '{}',
            agent_chain TEXT NOT NULL DEFAULT '[]',
            generation_prompt TEXT,
            security_verified INTEGER NOT NULL DEFAULT 0,
            update_available INTEGER NOT NULL DEFAULT 0,
            update_version INTEGER,
            last_update_check REAL,
            created_at REAL NOT NULL,
            updated_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_widgets_user ON custom_widgets(user_id)",
        """
        CREATE TABLE IF NOT EXISTS widget_versions (
            id TEXT PRIMARY KEY,
            widget_id TEXT NOT NULL REFERENCES custom_widgets(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            version_number INTEGER NOT NULL,
            version_name TEXT,
            config TEXT NOT NULL DEFAULT '{}',
            ai_capabilities TEXT NOT NULL DEFAULT '{}',
            data_sources TEXT NOT NULL DEFAULT '[]',
            style TEXT NOT NULL DEFAULT '{}',
            layout TEXT NOT NULL DEFAULT '{}',
            agent_chain TEXT NOT NULL DEFAULT '[]',
            generation_prompt TEXT,
            is_current INTEGER NOT NULL DEFAULT 0,
            created_by TEXT NOT NULL DEFAULT 'user',
            change_summary TEXT,
            rollback_available INTEGER NOT NULL DEFAULT 1,
            created_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_widget_versions_widget ON widget_versions(widget_id, version_number)",
        """
        CREATE TABLE IF NOT EXISTS widget_update_registry (
            id TEXT PRIMARY KEY,
            widget_type TEXT NOT NULL,
            category TEXT NOT NULL,
            latest_version INTEGER NOT NULL DEFAULT 1,
            version_name TEXT,
            improvements TEXT NOT NULL DEFAULT '[]',
            best_practices TEXT NOT NULL DEFAULT '{}',
            security_notes TEXT,
            performance_tips TEXT NOT NULL DEFAULT '[]',
            breaking_changes INTEGER NOT NULL DEFAULT 0,
            last_researched_at REAL,
            updated_at REAL NOT NULL,
            UNIQUE (widget_type, category)
        )
        """,
    )

    # ---- row mapping ----

    def _row_to_widget(self, row: sqlite3.Row) -> CustomWidget:
        return CustomWidget(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            widget_type=row["widget_type"],
            category=row["category"],
            version=int(row["version"]),
            config=self._json_dict(row["config"]),
            ai_capabilities=self._json_dict(row["ai_capabilities"]),
            data_sources=[str(x) for x in self._json_list(row["data_sources"])],
            style=self._json_dict(row["style"]),
            layout=self._json_dict(row["layout"]),
            agent_chain=[str(x) for x in self._json_list(row["agent_chain"])],
            generation_prompt=row["generation_prompt"],
            security_verified=bool(row["security_verified"]),
            update_available=bool(row["update_available"]),
            update_version=row["update_version"],
            last_update_check=row["last_update_check"],
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    def _row_to_version(self, row: sqlite3.Row) -> WidgetVersion:
        return WidgetVersion(
            id=row["id"],
            widget_id=row["widget_id"],
            user_id=row["user_id"],
            version_number=int(row["version_number"]),
            version_name=row["version_name"],
            config=self._json_dict(row["config"]),
            ai_capabilities=self._json_dict(row["ai_capabilities"]),
            data_sources=[str(x) for x in self._json_list(row["data_sources"])],
            style=self._json_dict(row["style"]),
            layout=self._json_dict(row["layout"]),
            agent_chain=[str(x) for x in self._json_list(row["agent_chain"])],
            generation_prompt=row["generation_prompt"],
            is_current=bool(row["is_current"]),
            created_by=row["created_by"],
            change_summary=row["change_summary"],
            rollback_available=bool(row["rollback_available"]),
            created_at=float(row["created_at"]),
        )

    def _row_to_registry(self, row: sqlite3.Row) -> RegistryEntry:
        return RegistryEntry(
            id=row["id"],
            widget_type=row["widget_type"],
            category=row["category"],
            latest_version=int(row["latest_version"]),
            version_name=row["version_name"],
            improvements=[str(x) for x in self._json_list(row["improvements"])],
            best_practices=self._json_dict(row["best_practices"]),
            security_notes=row["security_notes"],
            performance_tips=[str(x) for x in self._json_list(row["performance_tips"])],
            breaking_changes=bool(row["breaking_changes"]),
            last_researched_at=row["last_researched_at"],
        )

    # ---- widgets ----

    def add_widget(
            self,
            *,
            user_id: str,
            name: str,
            widget_type: str,
            category: str = "general",
            version: int = 1,
            config: dict[str, Any] | None = None,
            ai_capabilities: dict[str, Any] | None = None,
            data_sources: list[str] | None = None,
            style: dict[str, Any] | None = None,
            layout: dict[str, Any] | None = None,
            agent_chain: list[str] | None = None,
            generation_prompt: str | None = None,
            security_verified: bool = False,
    ) -> CustomWidget:
        if not user_id:
            raise ValueError("user_id is required")
        if not name or not name.strip():
            raise ValueError("name is required")
        widget_id = new_id()
        now = time.time()
        self._execute(
            """
            INSERT INTO custom_widgets(
                id, user_id, name, widget_type, category, version,
                config, ai_capabilities, data_sources, style, layout, agent_chain, generation_prompt,
                security_verified, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                widget_id, user_id, name.strip(), widget_type, category, int(version),
                self._json_dump(config or {}),
                self._json_dump(ai_capabilities or {}),
                self._json_dump(list(data_sources or [])),
                self._json_dump(style or {}),
                self._json_dump(layout or {}),
                self._json_dump(list(agent_chain or [])),
                generation_prompt,
                int(security_verified),
                now,
                now,
            ),
        )
        return self.require_widget(widget_id)

    def get_widget(self, widget_id: str, *, user_id: str | None = None) -> CustomWidget | None:
        if user_id:
            row = self._fetch_one("SELECT * FROM custom_widgets WHERE id = ? AND user_id = ?", (widget_id, user_id))
        else:
            row = self._fetch_one("SELECT * FROM custom_widgets WHERE id = ?", (widget_id,))
        return self._row_to_widget(row) if row else None

    def require_widget(self, widget_id: str, *, user_id: str | None = None) -> CustomWidget:
        widget = self.get_widget(widget_id, user_id=user_id)
        if widget is None:
            raise WidgetNotFoundError("Widget not found")
        return widget

    def list_widgets(self, user_id: str) -> list[CustomWidget]:
        rows = self._fetch_all("SELECT * FROM custom_widgets WHERE user_id = ? ORDER BY created_at ASC", (user_id,))
        return [self._row_to_widget(r) for r in rows]

    def update_widget(self, widget_id: str, *, conn: sqlite3.Connection | None = None, **fields: Any) -> bool:
        if not fields:
            return False
        sets, params = self._build_update(
            "custom_widgets", fields, allowed=_WIDGET_UPDATABLE, json_fields=_SNAPSHOT_JSON
        )
        sets.append("updated_at = ?")
        params.extend([time.time(), widget_id])
        sql = f"UPDATE custom_widgets SET {', '.join(sets)} WHERE id = ?"
        if conn is not None:
            return conn.execute(sql, params).rowcount == 1
        return self._execute(sql, params) == 1

    # ---- versions ----

    def _insert_version(
            self,
            conn: sqlite3.Connection,
            *,
            widget_id: str,
            user_id: str,
            version_number: int,
            snapshot: dict[str, Any],
            is_current: bool,
            created_by: str,
            change_summary: str | None,
            version_name: str | None = None,
            rollback_available: bool = True,
    ) -> str:
        version_id = new_id()
        if is_current:
            conn.execute("UPDATE widget_versions SET is_current = 0 WHERE widget_id = ?", (widget_id,))
        conn.execute(
            """
            INSERT INTO widget_versions(
                id, widget_id, user_id, version_number, version_name,
                config, ai_capabilities, data_sources, style, layout, agent_chain, generation_prompt,
                is_current, created_by, change_summary, rollback_available, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                version_id, widget_id, user_id, int(version_number), version_name,
                self._json_dump(snapshot.get("config") or {}),
                self._json_dump(snapshot.get("ai_capabilities") or {}),
                self._json_dump(list(snapshot.get("data_sources") or [])),
                self._json_dump(snapshot.get("style") or {}),
                self._json_dump(snapshot.get("layout") or {}),
                self._json_dump(list(snapshot.get("agent_chain") or [])),
                snapshot.get("generation_prompt"),
                int(is_current),
                created_by,
                change_summary,
                int(rollback_available),
                time.time(),
            ),
        )
        return version_id

    def add_version(
            self,
            widget: CustomWidget,
            *,
            created_by: str = "user",
            change_summary: str | None = None,
            is_current: bool = True,
            version_number: int | None = None,
            version_name: str | None = None,
    ) -> WidgetVersion:
        """Snapshot the widget as a version; a current snapshot clears the flag on all others."""
        with self._transaction() as conn:
            version_id = self._insert_version(
                conn,
                widget_id=widget.id,
                user_id=widget.user_id,
                version_number=widget.version if version_number is None else version_number,
                snapshot=widget.snapshot(),
                is_current=is_current,
                created_by=created_by,
                change_summary=change_summary,
                version_name=version_name,
            )
        return self.require_version(version_id)

    def get_version(self, version_id: str, *, user_id: str | None = None) -> WidgetVersion | None:
        if user_id:
            row = self._fetch_one("SELECT * FROM widget_versions WHERE id = ? AND user_id = ?", (version_id, user_id))
        else:
            row = self._fetch_one("SELECT * FROM widget_versions WHERE id = ?", (version_id,))
        return self._row_to_version(row) if row else None

    def require_version(self, version_id: str, *, user_id: str | None = None) -> WidgetVersion:
        version = self.get_version(version_id, user_id=user_id)
        if version is None:
            raise VersionNotFoundError("Version not found")
        return version

    def list_versions(self, widget_id: str, *, user_id: str | None = None) -> list[WidgetVersion]:
        sql = "SELECT * FROM widget_versions WHERE widget_id = ?"
        params: list[Any] = [widget_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY version_number DESC, created_at DESC"
        return [self._row_to_version(r) for r in self._fetch_all(sql, params)]

    def current_versions(self, widget_id: str) -> list[WidgetVersion]:
        rows = self._fetch_all("SELECT * FROM widget_versions WHERE widget_id = ? AND is_current = 1", (widget_id,))
        return [self._row_to_version(r) for r in rows]

    def apply_update(
            self,
            widget: CustomWidget,
            updates: dict[str, Any],
            *,
            new_version: int,
            backup_summary: str,
            change_summary: str,
            created_by: str = "user",
            backup_is_current: bool = True,
            version_name: str | None = None,
    ) -> tuple[str, str]:
        """
        Backup snapshot, widget update and new current version in one transaction.

        Returns (backup_version_id, new_version_id). Any error rolls back all three.
        """
        snapshot = widget.snapshot()
        new_snapshot = {k: updates[k] if k in updates else snapshot.get(k) for k in SNAPSHOT_FIELDS}
        with self._transaction() as conn:
            backup_id = self._insert_version(
                conn,
                widget_id=widget.id,
                user_id=widget.user_id,
                version_number=widget.version,
                snapshot=snapshot,
                is_current=backup_is_current,
                created_by=created_by,
                change_summary=backup_summary,
            )
            if not self.update_widget(widget.id, conn=conn, **updates, version=new_version):
                raise WidgetNotFoundError("Widget not found")
            new_id_ = self._insert_version(
                conn,
                widget_id=widget.id,
                user_id=widget.user_id,
                version_number=new_version,
                snapshot=new_snapshot,
                is_current=True,
                created_by=created_by,
                change_summary=change_summary,
                version_name=version_name,
            )
        return backup_id, new_id_

    def restore_version(self, widget_id: str, version: WidgetVersion) -> None:
        """Copy a version's snapshot onto the widget and make it the only current version."""
        with self._transaction() as conn:
            if not self.update_widget(widget_id, conn=conn, **version.snapshot(), version=version.version_number):
                raise WidgetNotFoundError("Widget not found")
            conn.execute("UPDATE widget_versions SET is_current = 0 WHERE widget_id = ?", (widget_id,))
            conn.execute("UPDATE widget_versions SET is_current = 1 WHERE id = ?", (version.id,))

    # ---- update registry ----

    def latest_registry_entry(self, widget_type: str) -> RegistryEntry | None:
        row = self._fetch_one(
            """
            SELECT * FROM widget_update_registry WHERE widget_type = ?
            ORDER BY latest_version DESC LIMIT 1
            """,
            (widget_type,),
        )
        return self._row_to_registry(row) if row else None

    def get_registry_entry(self, widget_type: str, category: str) -> RegistryEntry | None:
        row = self._fetch_one(
            "SELECT * FROM widget_update_registry WHERE widget_type = ? AND category = ?",
            (widget_type, category),
        )
        return self._row_to_registry(row) if row else None

    def upsert_registry_entry(
            self,
            *,
            widget_type: str,
            category: str,
            improvements: list[str],
            best_practices: dict[str, Any],
            security_notes: str | None,
            performance_tips: list[str],
            version_name: str | None = None,
            breaking_changes: bool = False,
    ) -> int:
        """Store research for (type, category), bumping latest_version by one. Returns the new version."""
        now = time.time()
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, latest_version FROM widget_update_registry WHERE widget_type = ? AND category = ?",
                (widget_type, category),
            ).fetchone()
            new_version = (int(row["latest_version"]) if row else 0) + 1
            params = (
                new_version,
                version_name,
                self._json_dump(list(improvements)),
                self._json_dump(dict(best_practices)),
                security_notes,
                self._json_dump(list(performance_tips)),
                int(breaking_changes),
                now,
                now,
            )
            if row:
                conn.execute(
                    """
                    UPDATE widget_update_registry
                    SET latest_version = ?, version_name = ?, improvements = ?, best_practices = ?,
                        security_notes = ?, performance_tips = ?, breaking_changes = ?,
                        last_researched_at = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (*params, row["id"]),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO widget_update_registry(
                        latest_version, version_name, improvements, best_practices,
                        security_notes, performance_tips, breaking_changes,
                        last_researched_at, updated_at, id, widget_type, category
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*params, new_id(), widget_type, category),
                )
        logger.info("Widget registry %s/%s now at v%d", widget_type, category, new_version)
        return new_version
