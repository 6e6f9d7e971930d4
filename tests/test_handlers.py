# tests/test_handlers.py

from __future__ import annotations

from typing import Any

import pytest

from atlas_os.core.results import success
from atlas_os.core.state import AppState
from atlas_os.llm.errors import LLMRateLimitError
from atlas_os.orchestrator import handlers
from atlas_os.orchestrator.functions import FUNCTIONS, agent_export, bulk_import, code_evolution, widget_updates
from atlas_os.orchestrator.registry import ActionRegistry, ActionRequest

from .fakes import FakeHttpPoster


def _call(state: AppState, body: dict[str, Any], registry: ActionRegistry = handlers.registry):
    return registry.dispatch(state, ActionRequest.from_body(body))


# ---- registry ----

def test_action_request_helpers() -> None:
    req = ActionRequest.from_body({"action": "x", "userId": 7, "limit": "5", "bad": "x", "d": {"a": 1}})

    assert req.user_id == "7"
    assert req.session_id is None
    assert req.get("missing", "dflt") == "dflt"
    assert req.get_int("limit", 1) == 5
    assert req.get_dict("d") == {"a": 1}
    assert req.get_dict("bad") == {}
    with pytest.raises(ValueError, match="bad must be an integer"):
        req.get_int("bad", 1)
    with pytest.raises(ValueError, match="missing is required"):
        req.require("missing")


def test_registry_maps_errors_to_statuses(state: AppState) -> None:
    reg = ActionRegistry("demo")

    def raise_(exc: Exception):
        def handler(_state, _req):
            raise exc
        return handler

    reg.register("lookup", raise_(LookupError("Thing not found")), "", requires_user=False)
    reg.register("invalid", raise_(ValueError("bad input")), "", requires_user=False)
    reg.register("limited", raise_(LLMRateLimitError("429")), "", requires_user=False)
    reg.register("crash", raise_(RuntimeError("kaput")), "", requires_user=False)
    reg.register("mine", lambda _s, r: success({"user": r.user_id}), "", aliases=["alias"])

    assert _call(state, {"action": "lookup"}, reg).status == 404
    assert _call(state, {"action": "invalid"}, reg).body == {"error": "bad input"}
    limited = _call(state, {"action": "limited"}, reg)
    assert limited.status == 429
    assert limited.body["error"] == "Rate limit exceeded. Please try again later."
    assert _call(state, {"action": "crash"}, reg).status == 500
    assert _call(state, {"action": "nope"}, reg).body == {"error": "Unknown action"}
    assert _call(state, {"action": "mine"}, reg).body == {"error": "userId is required"}
    assert _call(state, {"action": "alias", "userId": "u1"}, reg).body == {"user": "u1"}
    assert reg.actions == ["crash", "invalid", "limited", "lookup", "mine"]


def test_every_endpoint_is_exposed() -> None:
    assert set(FUNCTIONS) == {
        "atlas-orchestrator",
        "atlas-task-processor",
        "code-evolution-engine",
        "widget-update-checker",
        "atlas-allocate-agents",
        "bulk-import-agents",
        "export-agents",
    }
    assert {"create_task", "chat", "trigger_webhook", "transfer_knowledge"} <= set(handlers.registry.actions)


# ---- task queue ----

def test_task_crud(state: AppState) -> None:
    created = _call(state, {"action": "create_task", "userId": "u1", "taskData": {"task_title": "Draft memo"}})
    assert created.status == 200
    assert created.body["message"] == 'Task "Draft memo" created'
    task_id = created.body["task"]["id"]
    assert created.body["task"]["status"] == "pending"

    updated = _call(state, {
        "action": "update_task", "userId": "u1", "taskId": task_id, "updates": {"progress": 40},
    })
    assert updated.body["task"]["progress"] == 40

    listed = _call(state, {"action": "get_tasks", "userId": "u1"})
    assert [t["id"] for t in listed.body["tasks"]] == [task_id]

    assert _call(state, {"action": "delete_task", "userId": "u2", "taskId": task_id}).status == 404
    assert _call(state, {"action": "delete_task", "userId": "u1", "taskId": task_id}).body["message"] == "Task deleted"


def test_task_validation(state: AppState) -> None:
    missing_title = _call(state, {"action": "create_task", "userId": "u1", "taskData": {}})
    assert missing_title.status == 400
    unknown = _call(state, {"action": "create_task", "userId": "u1", "taskData": {"task_title": "x", "id": "y"}})
    assert unknown.status == 400
    assert _call(state, {"action": "update_task", "userId": "u1", "taskId": "missing"}).status == 404
    csuite = _call(state, {"action": "delete_task", "userId": "u1", "taskId": "csuite:abc"})
    assert csuite.status == 400


# ---- personal hub ----

def test_personal_flow(state: AppState) -> None:
    _call(state, {"action": "create_personal_item", "userId": "u1", "title": "Buy stamps"})
    done = _call(state, {"action": "complete_personal_item", "userId": "u1", "itemTitle": "stamps"})
    assert done.body["success"] is True
    assert done.body["message"] == '"Buy stamps" completed'

    missing = _call(state, {"action": "complete_personal_item", "userId": "u1", "itemTitle": "stamps"})
    assert missing.status == 404
    assert missing.body == {"error": "Item not found"}

    goal = _call(state, {"action": "create_personal_goal", "userId": "u1", "title": "Swim", "targetValue": 10})
    assert goal.body["goal"]["target_value"] == 10
    progress = _call(state, {"action": "update_goal_progress", "userId": "u1", "goalTitle": "swim", "increment": 3})
    assert progress.body["message"] == "Goal progress updated to 3"

    _call(state, {"action": "create_personal_habit", "userId": "u1", "name": "Floss"})
    habit = _call(state, {"action": "complete_habit", "userId": "u1", "habitName": "floss"})
    assert habit.body["streak"] == 1

    summary = _call(state, {"action": "get_personal_summary", "userId": "u1"}).body["summary"]
    assert summary["goals"]["total"] == 1
    assert summary["habits"]["totalStreak"] == 1


# ---- conversation ----

def test_chat_and_history(state: AppState) -> None:
    state.llm.queue("Hi there")

    chat = _call(state, {"action": "chat", "userId": "u1", "sessionId": "s", "query": "hello"})
    assert chat.body == {"response": "Hi there", "hasContext": False}

    history = _call(state, {"action": "get_conversation_history", "userId": "u1", "sessionId": "s"})
    assert [m["role"] for m in history.body["history"]] == ["assistant", "user"]

    assert _call(state, {"action": "chat", "userId": "u1"}).status == 400


def test_search_does_not_need_a_user(state: AppState) -> None:
    state.agents.add_agent(name="Sentinel", sector="SECURITY")

    out = _call(state, {"action": "search", "query": "senti"})

    assert out.status == 200
    assert out.body["searchMethod"] == "text"
    assert [a["name"] for a in out.body["agents"]] == ["Sentinel"]


def test_llm_errors_surface_their_status(state: AppState) -> None:
    state.llm.queue(LLMRateLimitError("slow down"))

    out = _call(state, {"action": "chat", "userId": "u1", "query": "hi"})

    assert out.status == 429


# ---- notifications ----

def test_notifications(state: AppState) -> None:
    sent = _call(state, {"action": "send_notification", "userId": "u1", "notification": {"title": "Ping"}})
    assert sent.body["notification"]["message"] == ""
    notification_id = sent.body["notification"]["id"]

    bad = _call(state, {"action": "send_notification", "userId": "u1", "notification": {"title": "x", "user_id": "u2"}})
    assert bad.status == 400

    listed = _call(state, {"action": "get_notifications", "userId": "u1"})
    assert [n["id"] for n in listed.body["notifications"]] == [notification_id]

    assert _call(state, {"action": "dismiss_notification", "userId": "u2", "notificationId": notification_id}).status == 404
    assert _call(state, {"action": "dismiss_notification", "userId": "u1", "notificationId": notification_id}).ok
    assert _call(state, {"action": "get_notifications", "userId": "u1"}).body["notifications"] == []


# ---- agents ----

def test_agent_performance_and_memory_validation(state: AppState) -> None:
    missing = _call(state, {"action": "record_agent_performance", "agentId": "a1", "taskType": "x"})
    assert missing.body == {"error": "agentId, taskType, and success are required"}
    assert _call(state, {"action": "get_agent_memory"}).body == {"error": "agentId is required"}

    agent = state.agents.add_agent(name="Scout", sector="DATA")
    recorded = _call(state, {
        "action": "record_agent_performance", "agentId": agent.id, "taskType": "research", "success": True,
    })
    assert recorded.body["message"] == "Performance recorded for agent"

    memories = _call(state, {"action": "get_agent_memory", "agentId": agent.id})
    assert memories.status == 200
    assert isinstance(memories.body["memories"], list)


# ---- webhooks ----

def test_webhook_lifecycle(state: AppState) -> None:
    created = _call(state, {
        "action": "create_webhook",
        "userId": "u1",
        "name": "Done hook",
        "webhookUrl": "https://hooks.example.com/done",
        "triggerType": "task_completed",
    })
    webhook_id = created.body["webhook"]["id"]

    renamed = _call(state, {"action": "update_webhook", "userId": "u1", "webhookId": webhook_id,
                            "updates": {"name": "Renamed"}})
    assert renamed.body["webhook"]["name"] == "Renamed"
    assert _call(state, {"action": "update_webhook", "userId": "u2", "webhookId": webhook_id,
                         "updates": {"name": "x"}}).status == 404

    fired = _call(state, {"action": "trigger_webhook", "userId": "u1", "webhookId": webhook_id, "payload": {"a": 1}})
    assert fired.body == {"success": True, "message": "Webhook triggered"}

    state.http.status_for = lambda _url: 500
    failed = _call(state, {"action": "trigger_webhook", "userId": "u1", "webhookId": webhook_id})
    assert failed.body == {"success": False, "message": "Failed to trigger webhook"}

    toggled = _call(state, {"action": "toggle_webhook", "userId": "u1", "webhookId": webhook_id})
    assert toggled.body["webhook"]["is_active"] is False
    auto = _call(state, {"action": "auto_trigger_webhooks", "userId": "u1", "triggerType": "task_completed"})
    assert auto.body["triggered"] == []

    assert _call(state, {"action": "delete_webhook", "userId": "u1", "webhookId": webhook_id}).ok
    assert _call(state, {"action": "delete_webhook", "userId": "u1", "webhookId": webhook_id}).status == 404
    assert _call(state, {"action": "get_webhooks", "userId": "u1"}).body == {"webhooks": []}


def test_task_completion_fires_task_completed_webhooks(state: AppState) -> None:
    http: FakeHttpPoster = state.http
    agent = state.agents.add_agent(name="Finisher", sector="UTILITY")
    task = state.tasks.add_task(user_id="u1", task_title="Ship it", assigned_agents=[agent.id])
    hook = state.webhooks.create_webhook(
        user_id="u1", name="Done", webhook_url="https://hooks.example.com/d", trigger_type="task_completed"
    )

    out = _call(state, {
        "action": "record_task_completion",
        "userId": "u1",
        "taskId": task.id,
        "agentId": agent.id,
        "taskType": "ops",
        "success": True,
    })

    assert out.body == {"success": True, "webhooksTriggered": [hook.id]}
    assert http.posted[0].json["task_id"] == task.id
    assert state.tasks.require_task(task.id).status.value == "completed"


# ---- other endpoints ----

def test_bulk_import_and_export_use_default_actions(state: AppState) -> None:
    empty = _call(state, {}, bulk_import)
    assert empty.body == {"error": "No agents provided"}

    report = _call(state, {"agents": [
        {"name": "Quant", "sector": "finance"},
        {"name": "", "sector": "DATA"},
        {"name": "Odd", "sector": "ASTROLOGY"},
    ]}, bulk_import)
    assert report.body["totalParsed"] == 3
    assert report.body["totalInserted"] == 1
    assert report.body["totalErrors"] == 2

    exported = _call(state, {}, agent_export)
    assert [a["name"] for a in exported.body["agents"]] == ["Quant"]


def test_widget_endpoint_validation(state: AppState) -> None:
    assert _call(state, {"action": "check_updates", "widgetId": "w"}, widget_updates).body == {
        "error": "Missing widgetId or userId"
    }
    assert _call(state, {"action": "research_improvements", "widgetType": "chart"}, widget_updates).body == {
        "error": "Missing widgetType or category"
    }

    widget = state.widgets.add_widget(user_id="u1", name="Clock", widget_type="clock")
    snap = _call(state, {"action": "create_snapshot", "userId": "u1", "widgetId": widget.id}, widget_updates)
    assert snap.body["version"]["version_number"] == 1

    history = _call(state, {"action": "get_version_history", "userId": "u1", "widgetId": widget.id}, widget_updates)
    assert len(history.body["versions"]) == 1

    other = _call(state, {"action": "create_snapshot", "userId": "u2", "widgetId": widget.id}, widget_updates)
    assert other.status == 404


def test_code_evolution_endpoint(state: AppState) -> None:
    missing = _call(state, {"action": "analyze", "entityName": "x"}, code_evolution)
    assert missing.status == 400

    integrate = _call(state, {"action": "integrate", "entityName": "x"}, code_evolution)
    assert integrate.body["status"] == "integration_ready"

    assert _call(state, {"action": "list"}, code_evolution).body == {"error": "userId is required"}
    assert _call(state, {"action": "list", "userId": "u1"}, code_evolution).body == {"evolutions": []}
