# src/atlas_os/service_log.py

"""Structured service logging persisted next to the domain data.

ServiceLogger writes through the stdlib logger first and then stores the
entry in `service_logs`, so operators can query per-request history.
Persistence problems are logged and swallowed: a failing log write must
never fail the request it describes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from .core.sqlite_store import SQLiteStore, new_id

logger = logging.getLogger(__name__)

LEVELS: dict[str, int] = {"debug": 0, "info": 1, "warn": 2, "error": 3}

_STDLIB_LEVEL = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(slots=True)
class ServiceLogEntry:
    id: str
    level: str
    message: str
    service: str
    request_id: str | None
    user_id: str | None
    org_id: str | None
    metadata: dict[str, Any]
    timestamp: float


class ServiceLogStore(SQLiteStore):
    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS service_logs (
            id TEXT PRIMARY KEY,
            level TEXT NOT NULL,
            message TEXT NOT NULL,
            service TEXT NOT NULL,
            request_id TEXT,
            user_id TEXT,
            org_id TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            timestamp REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_service_logs_service ON service_logs(service, timestamp)",
        """
        CREATE TABLE IF NOT EXISTS service_metrics (
            id TEXT PRIMARY KEY,
            service TEXT NOT NULL,
            metric_name TEXT NOT NULL,
            metric_value REAL NOT NULL,
            unit TEXT NOT NULL DEFAULT 'ms',
            request_id TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            timestamp REAL NOT NULL
        )
        """,
    )

    def add_log(
            self,
            *,
            level: str,
            message: str,
            service: str,
            request_id: str | None = None,
            user_id: str | None = None,
            org_id: str | None = None,
            metadata: dict[str, Any] | None = None,
    ) -> str:
        log_id = new_id()
        self._execute(
            """
            INSERT INTO service_logs(id, level, message, service, request_id, user_id, org_id, metadata, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (log_id, level, message, service, request_id, user_id, org_id,
             self._json_dump(metadata or {}), time.time()),
        )
        return log_id

    def add_metric(
            self,
            *,
            service: str,
            name: str,
            value: float,
            unit: str = "ms",
            request_id: str | None = None,
            metadata: dict[str, Any] | None = None,
    ) -> str:
        metric_id = new_id()
        self._execute(
            """
            INSERT INTO service_metrics(id, service, metric_name, metric_value, unit, request_id, metadata, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (metric_id, service, name, float(value), unit, request_id,
             self._json_dump(metadata or {}), time.time()),
        )
        return metric_id

    def list_logs(self, *, service: str | None = None, request_id: str | None = None, limit: int = 100) -> list[ServiceLogEntry]:
        where: list[str] = []
        params: list[Any] = []
        if service:
            where.append("service = ?")
            params.append(service)
        if request_id:
            where.append("request_id = ?")
            params.append(request_id)
        sql = "SELECT * FROM service_logs"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY timestamp DESC LIMIT ?"
        params.append(int(limit))
        return [
            ServiceLogEntry(
                id=r["id"],
                level=r["level"],
                message=r["message"],
                service=r["service"],
                request_id=r["request_id"],
                user_id=r["user_id"],
                org_id=r["org_id"],
                metadata=self._json_dict(r["metadata"]),
                timestamp=float(r["timestamp"]),
            )
            for r in self._fetch_all(sql, params)
        ]

    def list_metrics(self, *, service: str, name: str | None = None) -> list[dict[str, Any]]:
        sql = "SELECT * FROM service_metrics WHERE service = ?"
        params: list[Any] = [service]
        if name:
            sql += " AND metric_name = ?"
            params.append(name)
        sql += " ORDER BY timestamp DESC"
        return [
            {
                "name": r["metric_name"],
                "value": float(r["metric_value"]),
                "unit": r["unit"],
                "request_id": r["request_id"],
                "metadata": self._json_dict(r["metadata"]),
            }
            for r in self._fetch_all(sql, params)
        ]


class ServiceLogger:
    """Request-scoped logger bound to a service name and request context."""

    def __init__(
            self,
            service: str,
            store: ServiceLogStore | None = None,
            *,
            request_id: str | None = None,
            user_id: str | None = None,
            org_id: str | None = None,
            min_level: str = "info",
    ) -> None:
        self.service = service
        self.request_id = request_id or new_id()
        self.user_id = user_id
        self.org_id = org_id
        self._store = store
        self._min_level = LEVELS.get(min_level, LEVELS["info"])
        self._logger = logging.getLogger(f"atlas_os.service.{service}")

    def bind(self, *, user_id: str | None = None, org_id: str | None = None) -> "ServiceLogger":
        if user_id:
            self.user_id = user_id
        if org_id:
            self.org_id = org_id
        return self

    def _log(self, level: str, message: str, metadata: dict[str, Any] | None) -> None:
        self._logger.log(_STDLIB_LEVEL[level], "[%s] %s", self.request_id[:8], message)
        if self._store is None or LEVELS[level] < self._min_level:
            return
        try:
            self._store.add_log(
                level=level,
                message=message,
                service=self.service,
                request_id=self.request_id,
                user_id=self.user_id,
                org_id=self.org_id,
                metadata=metadata,
            )
        except Exception:
            logger.exception("Failed to persist service log (service=%s)", self.service)

    def debug(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("debug", message, metadata)

    def info(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("info", message, metadata)

    def warn(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("warn", message, metadata)

    def error(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("error", message, metadata)

    def metric(self, name: str, value: float, unit: str = "ms", metadata: dict[str, Any] | None = None) -> None:
        self._logger.debug("metric %s=%s%s", name, value, unit)
        if self._store is None:
            return
        try:
            self._store.add_metric(
                service=self.service,
                name=name,
                value=value,
                unit=unit,
                request_id=self.request_id,
                metadata=metadata,
            )
        except Exception:
            logger.exception("Failed to persist service metric %s (service=%s)", name, self.service)
