# src/atlas_os/widgets/update_checker.py

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from ..core.ports import LLMClient
from ..llm.parsing import extract_json_object
from .versioning import WidgetVersioning
from .widget_store import WidgetStore

logger = logging.getLogger(__name__)

RESEARCH_SYSTEM_PROMPT = (
    "You are a widget research assistant for a personal dashboard. "
    "Respond only with a JSON object."
)


class ResearchFailedError(RuntimeError):
    pass


def build_research_prompt(widget_type: str, category: str) -> str:
    return f"""Research the best practices for building a {widget_type} widget in the {category} domain for a personal dashboard application.

Focus on:
1. Data visualization best practices
2. User interaction patterns
3. Performance optimization
4. Accessibility requirements
5. Security considerations for user data
6. Mobile responsiveness

Return a JSON object with:
{{
  "best_practices": {{
    "visualization": ["practice1", "practice2"],
    "interaction": ["practice1", "practice2"],
    "performance": ["practice1", "practice2"],
    "accessibility": ["practice1", "practice2"],
    "security": ["practice1", "practice2"],
    "mobile": ["practice1", "practice2"]
  }},
  "improvements": ["improvement1", "improvement2", "improvement3"],
  "security_notes": "Key security considerations",
  "performance_tips": ["tip1", "tip2"]
}}"""


def _str_list(value: Any) -> list[str]:
    return [str(v) for v in value] if isinstance(value, list) else []


class WidgetUpdateChecker:
    def __init__(self, store: WidgetStore, llm: LLMClient, *, versioning: WidgetVersioning | None = None) -> None:
        self._store = store
        self._llm = llm
        self._versioning = versioning or WidgetVersioning(store)

    def check_updates(self, widget_id: str, user_id: str) -> dict[str, Any]:
        widget = self._store.require_widget(widget_id, user_id=user_id)
        registry = self._store.latest_registry_entry(widget.widget_type)
        self._versioning.check_for_updates(widget)
        if registry is None:
            return {
                "updateAvailable": False,
                "currentVersion": widget.version,
                "latestVersion": widget.version,
                "improvements": [],
                "breakingChanges": False,
                "securityNotes": None,
                "bestPractices": None,
            }
        return {
            "updateAvailable": registry.latest_version > widget.version,
            "currentVersion": widget.version,
            "latestVersion": registry.latest_version,
            "improvements": registry.improvements,
            "breakingChanges": registry.breaking_changes,
            "securityNotes": registry.security_notes,
            "bestPractices": registry.best_practices,
        }

    def research_improvements(self, widget_type: str, category: str) -> dict[str, Any]:
        content = self._llm.complete(
            [{"role": "user", "content": build_research_prompt(widget_type, category)}],
            system_prompt=RESEARCH_SYSTEM_PROMPT,
            json_mode=True,
        )
        research = extract_json_object(content)
        if research is None:
            raise ResearchFailedError("AI research failed")

        best_practices = research.get("best_practices")
        version = self._store.upsert_registry_entry(
            widget_type=widget_type,
            category=category,
            improvements=_str_list(research.get("improvements")),
            best_practices=best_practices if isinstance(best_practices, dict) else {},
            security_notes=str(research["security_notes"]) if research.get("security_notes") else None,
            performance_tips=_str_list(research.get("performance_tips")),
        )
        return {"success": True, "version": version, "research": research}

    def safe_migrate(self, widget_id: str, user_id: str) -> dict[str, Any]:
        """
        Move a widget to the newest registry version.

        A backup version is recorded first; if the migration write fails the
        transaction rolls back and the widget keeps its previous state.
        """
        widget = self._store.require_widget(widget_id, user_id=user_id)
        registry = self._store.latest_registry_entry(widget.widget_type)
        if registry is None or registry.latest_version <= widget.version:
            return {"success": True, "message": "Widget is already up to date"}

        now = time.time()
        config = {
            **widget.config,
            "_migrated_from": widget.version,
            "_migrated_at": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "_best_practices_applied": True,
        }
        ai_capabilities = {**widget.ai_capabilities, "bestPractices": registry.best_practices}

        try:
            backup_id, _ = self._store.apply_update(
                widget,
                {
                    "config": config,
                    "ai_capabilities": ai_capabilities,
                    "update_available": False,
                    "last_update_check": now,
                    "security_verified": True,
                },
                new_version=registry.latest_version,
                backup_summary=f"Pre-migration backup v{widget.version} -> v{registry.latest_version}",
                change_summary=f"Migrated to v{registry.latest_version} with best practices",
                created_by="auto-update",
                backup_is_current=False,
                version_name=registry.version_name,
            )
        except Exception as e:
            logger.error("Migration of widget %s failed, rolled back: %s", widget_id, e)
            raise RuntimeError("Migration failed, rolled back") from e

        logger.info("Widget %s migrated v%d -> v%d", widget_id, widget.version, registry.latest_version)
        return {
            "success": True,
            "previousVersion": widget.version,
            "newVersion": registry.latest_version,
            "backupId": backup_id,
            "improvements": registry.improvements,
            "message": "Widget safely migrated with backup created",
        }
