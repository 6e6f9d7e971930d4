# src/atlas_os/core/sqlite_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


class SQLiteStore:
    """
    Shared base for the SQLite-backed stores.

    - each method opens its own short-lived connection (thread-safe for the
      HTTP worker pool and the background sweeper)
    - schema is created on construction with CREATE TABLE IF NOT EXISTS
    - JSON columns are stored as TEXT
    """

    SCHEMA: tuple[str, ...] = ()

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """One connection, committed on success, rolled back on any error."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            for stmt in self.SCHEMA:
                cur.execute(stmt)
            conn.commit()
        finally:
            conn.close()

    def _fetch_all(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[sqlite3.Row]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> sqlite3.Row | None:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int:
        """Run a single write statement; returns the affected row count."""
        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    @staticmethod
    def _build_update(
        table: str,
        fields: dict[str, Any],
        *,
        allowed: frozenset[str],
        json_fields: frozenset[str] = frozenset(),
    ) -> tuple[list[str], list[Any]]:
        sets: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            if name not in allowed:
                raise ValueError(f"{table}: column {name!r} cannot be updated")
            sets.append(f"{name} = ?")
            if name in json_fields:
                params.append(SQLiteStore._json_dump(value))
            elif isinstance(value, bool):
                params.append(int(value))
            else:
                params.append(value)
        return sets, params

    # ---- JSON helpers ----

    @staticmethod
    def _json_dump(value: Any) -> str:
        if value is None:
            return "null"
        try:
            return json.dumps(value, ensure_ascii=False)
        except Exception:
            logger.exception("Failed to JSON-encode value; storing null.")
            return "null"

    @staticmethod
    def _json_load(s: str | None, default: Any = None) -> Any:
        if s is None or s == "":
            return default
        try:
            val = json.loads(s)
        except Exception:
            return default
        return default if val is None else val

    @classmethod
    def _json_dict(cls, s: str | None) -> dict[str, Any]:
        val = cls._json_load(s, {})
        return val if isinstance(val, dict) else {}

    @classmethod
    def _json_list(cls, s: str | None) -> list[Any]:
        val = cls._json_load(s, [])
        return val if isinstance(val, list) else []
