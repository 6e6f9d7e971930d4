# src/atlas_os/widgets/versioning.py

from __future__ import annotations

"""
Widget versioning: snapshots, safe updates with a backup, and rollback.

A user's widget is never left half-updated: every write that touches both
the widget and its version history goes through one store transaction.
"""

import logging
import time
from typing import Any

from .widget_models import CustomWidget, SafeUpdateResult, WidgetUpdateInfo, WidgetVersion
from .widget_store import VersionNotFoundError, WidgetStore

logger = logging.getLogger(__name__)

DANGEROUS_CAPABILITY_MARKERS = ("execute", "delete", "admin")
SENSITIVE_DATA_SOURCES = frozenset({"banking", "health", "passwords"})


class RollbackNotAvailableError(ValueError):
    pass


class WidgetVersioning:
    def __init__(self, store: WidgetStore) -> None:
        self._store = store

    def get_version_history(self, widget_id: str, user_id: str) -> list[WidgetVersion]:
        return self._store.list_versions(widget_id, user_id=user_id)

    def create_version_snapshot(
            self,
            widget: CustomWidget,
            change_summary: str | None = None,
            *,
            created_by: str = "user",
    ) -> WidgetVersion:
        return self._store.add_version(
            widget,
            created_by=created_by,
            change_summary=change_summary or "Manual snapshot",
            is_current=True,
        )

    def check_for_updates(self, widget: CustomWidget) -> WidgetUpdateInfo:
        registry = self._store.latest_registry_entry(widget.widget_type)
        available = registry is not None and registry.latest_version > widget.version
        latest = registry.latest_version if registry else widget.version
        self._store.update_widget(
            widget.id,
            last_update_check=time.time(),
            update_available=available,
            update_version=latest,
        )
        if not available:
            return WidgetUpdateInfo(available=False, current_version=widget.version, latest_version=widget.version)
        return WidgetUpdateInfo(
            available=True,
            current_version=widget.version,
            latest_version=registry.latest_version,
            improvements=list(registry.improvements),
            breaking_changes=registry.breaking_changes,
            security_notes=registry.security_notes,
            best_practices=registry.best_practices,
        )

    def safe_update(
            self,
            widget: CustomWidget,
            updates: dict[str, Any],
            change_summary: str | None = None,
    ) -> SafeUpdateResult:
        """Backup, bump the version, record the new version. On any error the widget is untouched."""
        summary = change_summary or "Widget update"
        new_version = widget.version + 1
        fields = {k: v for k, v in updates.items() if k not in ("id", "user_id", "version", "created_at", "updated_at")}
        fields["security_verified"] = True
        try:
            backup_id, _ = self._store.apply_update(
                widget,
                fields,
                new_version=new_version,
                backup_summary=f"Pre-update backup: {summary}",
                change_summary=change_summary or "Widget updated",
            )
        except Exception as e:
            logger.warning("Safe update of widget %s failed: %s", widget.id, e)
            return SafeUpdateResult(success=False, error=str(e) or "Your widget was not modified")
        logger.info("Widget %s updated to v%d (backup %s)", widget.id, new_version, backup_id)
        return SafeUpdateResult(success=True, new_version=new_version, backup_id=backup_id)

    def rollback_to_version(self, widget_id: str, version_id: str, user_id: str) -> WidgetVersion:
        version = self._store.get_version(version_id, user_id=user_id)
        if version is None or version.widget_id != widget_id:
            raise VersionNotFoundError("Version not found")
        if not version.rollback_available:
            raise RollbackNotAvailableError("Rollback not available for this version")
        self._store.restore_version(widget_id, version)
        logger.info("Widget %s rolled back to v%d", widget_id, version.version_number)
        return self._store.require_version(version_id)

    def verify_widget_security(self, widget_id: str) -> dict[str, Any]:
        widget = self._store.get_widget(widget_id)
        if widget is None:
            return {"secure": False, "issues": ["Widget not found"]}

        issues: list[str] = []
        if not widget.security_verified:
            issues.append("Widget has not been security verified")

        caps = widget.ai_capabilities
        if caps.get("enabled"):
            dangerous = [
                str(c) for c in caps.get("capabilities") or []
                if any(marker in str(c) for marker in DANGEROUS_CAPABILITY_MARKERS)
            ]
            if dangerous:
                issues.append(f"Widget has elevated capabilities: {', '.join(dangerous)}")

        if any(ds in SENSITIVE_DATA_SOURCES for ds in widget.data_sources):
            issues.append("Widget accesses sensitive data sources")

        if not issues:
            self._store.update_widget(widget_id, security_verified=True)
        return {"secure": not issues, "issues": issues}
