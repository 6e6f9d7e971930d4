# src/atlas_os/orchestrator/functions.py

from __future__ import annotations

import logging

from ..agents.allocation import AgentAllocator
from ..agents.bulk import export_agents, import_agents
from ..core.results import HandlerResult, bad_request, success
from ..core.state import AppState
from ..evolution.engine import CodeEvolutionEngine
from ..evolution.proposals import EvolutionProposals
from ..tasks.processor import TaskProcessor
from ..widgets.update_checker import WidgetUpdateChecker
from ..widgets.versioning import WidgetVersioning
from . import handlers
from .registry import ActionRegistry, ActionRequest

logger = logging.getLogger(__name__)

task_processor = ActionRegistry("atlas-task-processor")
code_evolution = ActionRegistry("code-evolution-engine")
widget_updates = ActionRegistry("widget-update-checker")
allocate_agents = ActionRegistry("atlas-allocate-agents", default_action="allocate")
bulk_import = ActionRegistry("bulk-import-agents", default_action="import")
agent_export = ActionRegistry("export-agents", default_action="export")


def _processor(state: AppState) -> TaskProcessor:
    return TaskProcessor.from_settings(state.settings, state.tasks, state.notifications, state.llm)


def _engine(state: AppState) -> CodeEvolutionEngine:
    return CodeEvolutionEngine.from_settings(state.settings, state.llm)


# ---- atlas-task-processor ----

@task_processor.action("process_task", "Advance one task (taskId).", requires_user=False)
def fn_process_task(state: AppState, req: ActionRequest) -> HandlerResult:
    task_id = req.get("taskId")
    if not task_id:
        return bad_request("taskId is required")
    return success(_processor(state).process_task_by_id(str(task_id)).to_dict())


@task_processor.action("process_user_tasks", "Advance a user's open tasks.")
def fn_process_user_tasks(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_processor(state).process_user_tasks(req.user_id or ""))


@task_processor.action("background_sweep", "Advance the oldest open tasks.", requires_user=False)
def fn_background_sweep(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_processor(state).background_sweep().to_dict())


# ---- code-evolution-engine ----

def _run_engine(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _engine(state).run(
        req.action,
        entity_type=str(req.get("entityType", "agent")),
        entity_name=str(req.get("entityName", "unnamed")),
        source_code=req.get("sourceCode"),
        evolution_type=req.get("evolutionType"),
    )
    return success(body)


for _name in ("analyze", "evolve", "integrate", "rollback"):
    code_evolution.register(_name, _run_engine, f"Engine action: {_name}.", requires_user=False)


def _proposals(state: AppState) -> EvolutionProposals:
    return EvolutionProposals(state.evolutions, _engine(state))


@code_evolution.action("propose", "Evolve code and store it as a proposal.")
def fn_propose_evolution(state: AppState, req: ActionRequest) -> HandlerResult:
    evolution = _proposals(state).propose_evolution(
        req.user_id or "",
        entity_type=str(req.get("entityType", "agent")),
        entity_name=str(req.require("entityName")),
        source_code=str(req.require("sourceCode")),
        evolution_type=str(req.get("evolutionType", "improvement")),
        entity_id=req.get("entityId"),
    )
    return success({"success": True, "evolution": evolution.to_dict()})


@code_evolution.action("approve", "Approve a proposal (evolutionId).")
def fn_approve_evolution(state: AppState, req: ActionRequest) -> HandlerResult:
    evolution = _proposals(state).approve_evolution(str(req.require("evolutionId")), user_id=req.user_id or "")
    return success({"success": True, "evolution": evolution.to_dict()})


@code_evolution.action("reject", "Reject a proposal (evolutionId).")
def fn_reject_evolution(state: AppState, req: ActionRequest) -> HandlerResult:
    evolution = _proposals(state).reject_evolution(str(req.require("evolutionId")), user_id=req.user_id or "")
    return success({"success": True, "evolution": evolution.to_dict()})


@code_evolution.action("rollback_evolution", "Roll back an approved proposal (evolutionId).")
def fn_rollback_evolution(state: AppState, req: ActionRequest) -> HandlerResult:
    evolution = _proposals(state).rollback_evolution(str(req.require("evolutionId")), user_id=req.user_id or "")
    return success({"success": True, "evolution": evolution.to_dict()})


@code_evolution.action("list", "50 newest proposals.")
def fn_list_evolutions(state: AppState, req: ActionRequest) -> HandlerResult:
    evolutions = _proposals(state).list_evolutions(req.user_id or "", limit=req.get_int("limit", 50))
    return success({"evolutions": [e.to_dict() for e in evolutions]})


# ---- widget-update-checker ----

def _widget_target(req: ActionRequest) -> tuple[str, str] | None:
    widget_id = req.get("widgetId")
    if not widget_id or not req.user_id:
        return None
    return str(widget_id), req.user_id


@widget_updates.action("check_updates", "Compare a widget with the registry.", requires_user=False)
def fn_check_updates(state: AppState, req: ActionRequest) -> HandlerResult:
    target = _widget_target(req)
    if target is None:
        return bad_request("Missing widgetId or userId")
    return success(WidgetUpdateChecker(state.widgets, state.llm).check_updates(*target))


@widget_updates.action("research_improvements", "LLM research for a widget type.", requires_user=False)
def fn_research_improvements(state: AppState, req: ActionRequest) -> HandlerResult:
    widget_type = req.get("widgetType")
    category = req.get("category")
    if not widget_type or not category:
        return bad_request("Missing widgetType or category")
    return success(WidgetUpdateChecker(state.widgets, state.llm).research_improvements(str(widget_type), str(category)))


@widget_updates.action("safe_migrate", "Migrate a widget to the latest registry version.", requires_user=False)
def fn_safe_migrate(state: AppState, req: ActionRequest) -> HandlerResult:
    target = _widget_target(req)
    if target is None:
        return bad_request("Missing widgetId or userId")
    return success(WidgetUpdateChecker(state.widgets, state.llm).safe_migrate(*target))


@widget_updates.action("get_version_history", "Versions of a widget, newest first.", requires_user=False)
def fn_version_history(state: AppState, req: ActionRequest) -> HandlerResult:
    target = _widget_target(req)
    if target is None:
        return bad_request("Missing widgetId or userId")
    versions = WidgetVersioning(state.widgets).get_version_history(*target)
    return success({"versions": [v.to_dict() for v in versions]})


@widget_updates.action("create_snapshot", "Record the widget's current state as a version.")
def fn_create_snapshot(state: AppState, req: ActionRequest) -> HandlerResult:
    widget = state.widgets.require_widget(str(req.require("widgetId")), user_id=req.user_id)
    version = WidgetVersioning(state.widgets).create_version_snapshot(widget, req.get("changeSummary"))
    return success({"success": True, "version": version.to_dict()})


@widget_updates.action("safe_update", "Apply updates with a backup version.")
def fn_safe_update(state: AppState, req: ActionRequest) -> HandlerResult:
    widget = state.widgets.require_widget(str(req.require("widgetId")), user_id=req.user_id)
    result = WidgetVersioning(state.widgets).safe_update(widget, req.get_dict("updates"), req.get("changeSummary"))
    return success(result.to_dict())


@widget_updates.action("rollback_version", "Restore a widget version (versionId).")
def fn_rollback_version(state: AppState, req: ActionRequest) -> HandlerResult:
    version = WidgetVersioning(state.widgets).rollback_to_version(
        str(req.require("widgetId")), str(req.require("versionId")), req.user_id or ""
    )
    return success({"success": True, "version": version.to_dict()})


@widget_updates.action("verify_security", "Security review of a widget.", requires_user=False)
def fn_verify_security(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(WidgetVersioning(state.widgets).verify_widget_security(str(req.require("widgetId"))))


# ---- agent roster ----

@allocate_agents.action("allocate", "Recommend agents for the user's plan and persona.")
def fn_allocate_agents(state: AppState, req: ActionRequest) -> HandlerResult:
    result = AgentAllocator(state.agents).allocate(
        req.user_id or "",
        persona=req.get("persona"),
        workspace_id=req.get("workspaceId"),
        auto_assign=bool(req.get("autoAssign", False)),
        limit=req.get_int("limit", 5),
    )
    return success({"success": True, **result.to_dict()})


@bulk_import.action("import", "Insert a JSON list of agents.", requires_user=False)
def fn_bulk_import(state: AppState, req: ActionRequest) -> HandlerResult:
    records = req.get("agents")
    if not isinstance(records, list) or not records:
        return bad_request("No agents provided")
    report = import_agents(state.agents, records)
    return success(
        {
            "success": True,
            "totalParsed": len(records),
            "totalInserted": report.imported,
            "totalErrors": report.skipped,
            "errors": report.errors[:10],
        }
    )


@agent_export.action("export", "Full agent roster.", requires_user=False)
def fn_export_agents(state: AppState, req: ActionRequest) -> HandlerResult:
    return success({"agents": export_agents(state.agents, limit=req.get_int("limit", 1000))})


FUNCTIONS: dict[str, ActionRegistry] = {
    r.name: r
    for r in (
        handlers.registry,
        task_processor,
        code_evolution,
        widget_updates,
        allocate_agents,
        bulk_import,
        agent_export,
    )
}
