# src/atlas_os/widgets/widget_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Columns copied between a widget and its version snapshots.
SNAPSHOT_FIELDS: tuple[str, ...] = (
    "config",
    "ai_capabilities",
    "data_sources",
    "style",
    "layout",
    "agent_chain",
    "generation_prompt",
)


@dataclass(slots=True)
class CustomWidget:
    id: str
    user_id: str
    name: str
    widget_type: str
    category: str
    version: int
    created_at: float
    updated_at: float

    config: dict[str, Any] = field(default_factory=dict)
    ai_capabilities: dict[str, Any] = field(default_factory=dict)
    data_sources: list[str] = field(default_factory=list)
    style: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)
    agent_chain: list[str] = field(default_factory=list)
    generation_prompt: str | None = None

    security_verified: bool = False
    update_available: bool = False
    update_version: int | None = None
    last_update_check: float | None = None

    def snapshot(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SNAPSHOT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "widget_type": self.widget_type,
            "category": self.category,
            "version": self.version,
            **self.snapshot(),
            "security_verified": self.security_verified,
            "update_available": self.update_available,
            "update_version": self.update_version,
            "last_update_check": self.last_update_check,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True)
class WidgetVersion:
    id: str
    widget_id: str
    user_id: str
    version_number: int
    is_current: bool
    created_by: str
    rollback_available: bool
    created_at: float

    version_name: str | None = None
    change_summary: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    ai_capabilities: dict[str, Any] = field(default_factory=dict)
    data_sources: list[str] = field(default_factory=list)
    style: dict[str, Any] = field(default_factory=dict)
    layout: dict[str, Any] = field(default_factory=dict)
    agent_chain: list[str] = field(default_factory=list)
    generation_prompt: str | None = None

    def snapshot(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SNAPSHOT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "widget_id": self.widget_id,
            "user_id": self.user_id,
            "version_number": self.version_number,
            "version_name": self.version_name,
            **self.snapshot(),
            "is_current": self.is_current,
            "created_by": self.created_by,
            "change_summary": self.change_summary,
            "rollback_available": self.rollback_available,
            "created_at": self.created_at,
        }


@dataclass(slots=True)
class RegistryEntry:
    id: str
    widget_type: str
    category: str
    latest_version: int
    version_name: str | None = None
    improvements: list[str] = field(default_factory=list)
    best_practices: dict[str, Any] = field(default_factory=dict)
    security_notes: str | None = None
    performance_tips: list[str] = field(default_factory=list)
    breaking_changes: bool = False
    last_researched_at: float | None = None


@dataclass(slots=True, frozen=True)
class WidgetUpdateInfo:
    available: bool
    current_version: int
    latest_version: int
    improvements: list[str] = field(default_factory=list)
    breaking_changes: bool = False
    security_notes: str | None = None
    best_practices: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "updateAvailable": self.available,
            "currentVersion": self.current_version,
            "latestVersion": self.latest_version,
            "improvements": self.improvements,
            "breakingChanges": self.breaking_changes,
            "securityNotes": self.security_notes,
            "bestPractices": self.best_practices,
        }


@dataclass(slots=True, frozen=True)
class SafeUpdateResult:
    success: bool
    new_version: int | None = None
    backup_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.success:
            out["newVersion"] = self.new_version
            out["backupId"] = self.backup_id
        else:
            out["error"] = self.error
        return out
