# src/atlas_os/orchestrator/handlers.py

"""
Actions of the Atlas orchestrator endpoint.

Every handler takes (state, request) and returns a HandlerResult. Domain
errors are raised, not returned: ActionRegistry.dispatch maps them to JSON
errors (ValueError 400, LookupError 404, LLM errors their own status).
"""

from __future__ import annotations

import logging
from typing import Any

from ..agents.orchestration import AgentOrchestrator
from ..assistant.assistant import AtlasAssistant
from ..core.results import HandlerResult, bad_request, not_found, success
from ..core.state import AppState
from ..personal.hub import PersonalHub
from ..tasks.assignment import TaskAssigner
from ..tasks.task_models import TaskStatus
from ..tasks.task_store import TaskNotFoundError
from ..webhooks.dispatcher import WebhookDispatcher
from ..webhooks.webhook_store import WebhookNotFoundError
from .registry import ActionRegistry, ActionRequest

logger = logging.getLogger(__name__)

registry = ActionRegistry("atlas-orchestrator")

_NOTIFICATION_FIELDS = frozenset(
    {
        "title",
        "message",
        "notification_type",
        "priority",
        "source_agent_name",
        "related_entity_type",
        "related_entity_id",
        "metadata",
    }
)
_TASK_CREATE_FIELDS = frozenset(
    {
        "task_title",
        "task_type",
        "task_description",
        "task_priority",
        "orchestration_mode",
        "input_data",
        "assigned_agents",
        "agent_suggestions",
        "due_date",
    }
)


# ---- wiring ----

def _orchestrator(state: AppState) -> AgentOrchestrator:
    return AgentOrchestrator(state.agents, state.llm)


def _assigner(state: AppState) -> TaskAssigner:
    return TaskAssigner(state.tasks, state.agents, _orchestrator(state))


def _hub(state: AppState) -> PersonalHub:
    return PersonalHub(state.personal, tasks=state.tasks, conversations=state.conversations, llm=state.llm)


def _assistant(state: AppState) -> AtlasAssistant:
    return AtlasAssistant(state.conversations, state.agents, state.llm)


def _dispatcher(state: AppState) -> WebhookDispatcher:
    timeout = float(getattr(state.settings, "webhook_timeout_seconds", 10.0))
    return WebhookDispatcher(state.webhooks, state.http, timeout=timeout)


def _ok(body: dict[str, Any]) -> HandlerResult:
    return success({"success": True, **body})


def _user(req: ActionRequest) -> str:
    # registry guarantees it for user-scoped actions
    return req.user_id or ""


# ---- task queue ----

def act_create_task(state: AppState, req: ActionRequest) -> HandlerResult:
    data = req.get_dict("taskData")
    unknown = set(data) - _TASK_CREATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
    if not data.get("task_title"):
        raise ValueError("task_title is required")
    task = state.tasks.add_task(user_id=_user(req), status=TaskStatus.PENDING, progress=0, **data)
    return _ok({"task": task.to_dict(), "message": f'Task "{task.task_title}" created'})


def act_update_task(state: AppState, req: ActionRequest) -> HandlerResult:
    task_id = str(req.require("taskId"))
    updates = req.get_dict("updates")
    if not state.tasks.update_task(task_id, user_id=_user(req), **updates):
        if state.tasks.get_task(task_id, user_id=_user(req)) is None:
            raise TaskNotFoundError("Task not found")
    task = state.tasks.require_task(task_id, user_id=_user(req))
    return _ok({"task": task.to_dict(), "message": "Task updated"})


def act_delete_task(state: AppState, req: ActionRequest) -> HandlerResult:
    task_id = str(req.require("taskId"))
    if task_id.startswith("csuite:"):
        return bad_request("C-suite tasks are not managed by the task queue")
    if not state.tasks.delete_task(task_id, user_id=_user(req)):
        return not_found("Task not found")
    return _ok({"message": "Task deleted"})


def act_get_tasks(state: AppState, req: ActionRequest) -> HandlerResult:
    tasks = state.tasks.list_user_tasks(_user(req), limit=20)
    return success({"tasks": [t.to_dict() for t in tasks]})


# ---- personal hub ----

def act_create_personal_item(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _hub(state).create_personal_item(
        _user(req),
        title=req.get("title"),
        item_type=req.get("itemType"),
        content=req.get("content"),
        metadata=req.get_dict("metadata"),
        tags=req.get("tags"),
        priority=req.get("priority"),
        due_date=req.get("dueDate"),
        reminder_at=req.get("reminderAt"),
        recurrence_rule=req.get("recurrenceRule"),
    )
    return _ok(body)


def act_update_personal_item(state: AppState, req: ActionRequest) -> HandlerResult:
    return _ok(_hub(state).update_personal_item(_user(req), req.get("itemId"), req.get_dict("updates")))


def act_complete_personal_item(state: AppState, req: ActionRequest) -> HandlerResult:
    return _ok(_hub(state).complete_personal_item(_user(req), item_id=req.get("itemId"), title=req.get("itemTitle")))


def act_delete_personal_item(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_hub(state).delete_personal_item(_user(req), item_id=req.get("itemId"), title=req.get("itemTitle")))


def act_get_personal_items(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _hub(state).get_personal_items(
        _user(req),
        item_type=req.get("itemType"),
        status=req.get("status"),
        limit=req.get_int("limit", 50),
    )
    return success(body)


def act_create_personal_goal(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _hub(state).create_goal(
        _user(req),
        title=req.get("title"),
        description=req.get("description"),
        category=req.get("category"),
        target_value=req.get("targetValue"),
        unit=req.get("unit"),
        target_date=req.get("targetDate"),
    )
    return _ok(body)


def act_update_goal_progress(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _hub(state).update_goal_progress(
        _user(req),
        goal_id=req.get("goalId"),
        title=req.get("goalTitle"),
        value=req.get("value"),
        increment=req.get("increment"),
    )
    return _ok(body)


def act_create_personal_habit(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _hub(state).create_habit(
        _user(req),
        name=req.get("name"),
        description=req.get("description"),
        frequency=req.get("frequency"),
        target_count=req.get("targetCount"),
    )
    return _ok(body)


def act_complete_habit(state: AppState, req: ActionRequest) -> HandlerResult:
    return _ok(_hub(state).complete_habit(_user(req), habit_id=req.get("habitId"), name=req.get("habitName")))


def act_get_personal_summary(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_hub(state).get_personal_summary(_user(req)))


def act_sync_memory_tasks(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_hub(state).sync_memory_tasks(_user(req)))


# ---- conversation, search, synthesis ----

def act_get_conversation_history(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _assistant(state).get_conversation_history(
        _user(req), session_id=req.session_id, limit=req.get_int("limit", 50)
    )
    return success(body)


def act_chat(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_assistant(state).chat(_user(req), req.get("query"), session_id=req.session_id))


def act_search(state: AppState, req: ActionRequest) -> HandlerResult:
    return success(_assistant(state).search(req.get("query")))


def act_synthesize(state: AppState, req: ActionRequest) -> HandlerResult:
    body = _assistant(state).synthesize(
        _user(req),
        req.get("agentIds"),
        req.get("requirements"),
        session_id=req.session_id,
    )
    return success(body)


# ---- notifications ----

def act_send_notification(state: AppState, req: ActionRequest) -> HandlerResult:
    data = req.get_dict("notification")
    unknown = set(data) - _NOTIFICATION_FIELDS
    if unknown:
        raise ValueError(f"Unknown notification fields: {', '.join(sorted(unknown))}")
    data.setdefault("message", "")
    notification = state.notifications.send_notification(user_id=_user(req), **data)
    return _ok({"notification": notification.to_dict()})


def act_get_notifications(state: AppState, req: ActionRequest) -> HandlerResult:
    notifications = state.notifications.get_notifications(_user(req), limit=50)
    return success({"notifications": [n.to_dict() for n in notifications]})


def act_dismiss_notification(state: AppState, req: ActionRequest) -> HandlerResult:
    notification_id = str(req.require("notificationId"))
    if not state.notifications.dismiss_notification(notification_id, user_id=_user(req)):
        return not_found("Notification not found")
    return _ok({})


# ---- agents ----

def act_orchestrate_agents(state: AppState, req: ActionRequest) -> HandlerResult:
    context = ""
    if req.user_id:
        context = state.conversations.conversation_context(req.user_id, session_id=req.session_id, limit=10)
    outcome = _orchestrator(state).orchestrate(
        str(req.get("query", "")),
        user_id=req.user_id,
        task_type=req.get("taskType"),
        conversation_context=context,
    )
    return success(outcome.to_dict())


def act_route_task(state: AppState, req: ActionRequest) -> HandlerResult:
    task_type = str(req.require("taskType"))
    route = _assigner(state).route_task_through_hierarchy(task_type, domain=req.get("domain"))
    return success(route.to_dict())


def act_record_agent_performance(state: AppState, req: ActionRequest) -> HandlerResult:
    agent_id = req.get("agentId")
    task_type = req.get("taskType")
    outcome = req.body.get("success")
    if not agent_id or not task_type or outcome is None:
        return bad_request("agentId, taskType, and success are required")
    score = _orchestrator(state).record_agent_performance(
        str(agent_id),
        str(task_type),
        bool(outcome),
        user_id=req.user_id,
        task_description=req.get("taskDescription"),
        confidence_score=req.get("confidenceScore"),
        execution_time_ms=req.get("executionTimeMs"),
        error_type=req.get("errorType"),
    )
    return _ok({"performance": score.to_dict(), "message": "Performance recorded for agent"})


def act_get_agent_memory(state: AppState, req: ActionRequest) -> HandlerResult:
    agent_id = req.get("agentId")
    if not agent_id:
        return bad_request("agentId is required")
    memories = state.agents.list_memories(
        str(agent_id),
        limit=req.get_int("limit", 50),
        memory_type=req.get("memoryType"),
    )
    return success({"memories": [m.to_dict() for m in memories]})


# ---- task assignment ----

def act_auto_assign_task(state: AppState, req: ActionRequest) -> HandlerResult:
    result = _assigner(state).auto_assign_task(
        _user(req),
        title=str(req.require("title")),
        description=str(req.get("description", "")),
        task_type=req.get("taskType"),
        priority=str(req.get("priority", "medium")),
    )
    return success(result.to_dict())


def act_assign_task_to_agents(state: AppState, req: ActionRequest) -> HandlerResult:
    task_id = str(req.require("taskId"))
    agent_ids = req.get("agentIds", [])
    if not isinstance(agent_ids, list):
        raise ValueError("agentIds must be a list")
    ok = _assigner(state).assign_task_to_agents(
        _user(req), task_id, [str(a) for a in agent_ids], task_type=req.get("taskType")
    )
    return success({"success": ok})


def act_get_task_assignments(state: AppState, req: ActionRequest) -> HandlerResult:
    assignments = _assigner(state).fetch_recent_assignments(_user(req), limit=req.get_int("limit", 20))
    return success({"assignments": [a.to_dict() for a in assignments]})


def act_record_task_completion(state: AppState, req: ActionRequest) -> HandlerResult:
    task_id = str(req.require("taskId"))
    agent_id = str(req.require("agentId"))
    task_type = str(req.get("taskType", "general"))
    done = bool(req.require("success"))
    ok = _assigner(state).record_task_completion(
        _user(req),
        task_id=task_id,
        agent_id=agent_id,
        task_type=task_type,
        success=done,
        confidence_score=req.get("confidenceScore"),
        execution_time_ms=req.get("executionTimeMs"),
        user_satisfaction=req.get("userSatisfaction"),
    )
    triggered: list[str] = []
    if ok and done:
        triggered = _dispatcher(state).auto_trigger(
            _user(req),
            "task_completed",
            {"task_id": task_id, "agent_id": agent_id, "task_type": task_type},
        )
    return success({"success": ok, "webhooksTriggered": triggered})


def act_transfer_knowledge(state: AppState, req: ActionRequest) -> HandlerResult:
    source = str(req.require("sourceAgentId"))
    targets = req.get("targetAgentIds", [])
    if not isinstance(targets, list) or not targets:
        raise ValueError("targetAgentIds is required")
    shared = _assigner(state).transfer_knowledge(
        source,
        [str(t) for t in targets],
        min_importance=float(req.get("minImportance", 0.7)),
    )
    return _ok({"shared": shared})


# ---- automation webhooks ----

def act_create_webhook(state: AppState, req: ActionRequest) -> HandlerResult:
    webhook = state.webhooks.create_webhook(
        user_id=_user(req),
        name=str(req.require("name")),
        webhook_url=str(req.require("webhookUrl")),
        trigger_type=str(req.get("triggerType", "custom")),
        description=req.get("description"),
        provider=req.get("provider"),
        trigger_conditions=req.get_dict("triggerConditions"),
        headers=req.get_dict("headers"),
        metadata=req.get_dict("metadata"),
    )
    return _ok({"webhook": webhook.to_dict(), "message": "Webhook created"})


def act_update_webhook(state: AppState, req: ActionRequest) -> HandlerResult:
    webhook_id = str(req.require("webhookId"))
    if not state.webhooks.update_webhook(webhook_id, user_id=_user(req), **req.get_dict("updates")):
        state.webhooks.require_webhook(webhook_id, user_id=_user(req))
    webhook = state.webhooks.require_webhook(webhook_id)
    return _ok({"webhook": webhook.to_dict(), "message": "Webhook updated"})


def act_delete_webhook(state: AppState, req: ActionRequest) -> HandlerResult:
    if not state.webhooks.delete_webhook(str(req.require("webhookId")), user_id=_user(req)):
        raise WebhookNotFoundError()
    return _ok({"message": "Webhook deleted"})


def act_toggle_webhook(state: AppState, req: ActionRequest) -> HandlerResult:
    webhook = state.webhooks.toggle_webhook(str(req.require("webhookId")), user_id=_user(req))
    return _ok({"webhook": webhook.to_dict()})


def act_get_webhooks(state: AppState, req: ActionRequest) -> HandlerResult:
    return success({"webhooks": [w.to_dict() for w in state.webhooks.list_webhooks(_user(req))]})


def act_trigger_webhook(state: AppState, req: ActionRequest) -> HandlerResult:
    delivered = _dispatcher(state).trigger(_user(req), str(req.require("webhookId")), req.get_dict("payload"))
    message = "Webhook triggered" if delivered else "Failed to trigger webhook"
    return success({"success": delivered, "message": message})


def act_auto_trigger_webhooks(state: AppState, req: ActionRequest) -> HandlerResult:
    delivered = _dispatcher(state).auto_trigger(
        _user(req), str(req.require("triggerType")), req.get_dict("payload")
    )
    return _ok({"triggered": delivered})


registry.register("create_task", act_create_task, "Queue a task from taskData.")
registry.register("update_task", act_update_task, "Update a queued task (taskId, updates).")
registry.register("delete_task", act_delete_task, "Delete a queued task (taskId).")
registry.register("get_tasks", act_get_tasks, "20 newest queued tasks.")

registry.register("create_personal_item", act_create_personal_item, "Create a task/note/reminder item.")
registry.register("update_personal_item", act_update_personal_item, "Update a personal item (itemId, updates).")
registry.register("complete_personal_item", act_complete_personal_item, "Complete an item by itemId or itemTitle.")
registry.register("delete_personal_item", act_delete_personal_item, "Soft-delete an item by itemId or itemTitle.")
registry.register("get_personal_items", act_get_personal_items, "List personal items (itemType, status, limit).")
registry.register("create_personal_goal", act_create_personal_goal, "Create a goal.")
registry.register("update_goal_progress", act_update_goal_progress, "Set or increment goal progress.")
registry.register("create_personal_habit", act_create_personal_habit, "Create a habit.")
registry.register("complete_habit", act_complete_habit, "Log a habit completion (habitId or habitName).")
registry.register("get_personal_summary", act_get_personal_summary, "Tasks, goals and habits summary.")
registry.register("sync_memory_tasks", act_sync_memory_tasks, "Extract queue tasks from the memory feed.")

registry.register("get_conversation_history", act_get_conversation_history, "Conversation turns, newest first.")
registry.register("chat", act_chat, "Chat with Atlas using conversation memory.")
registry.register("search", act_search, "Semantic (or text) agent search.", requires_user=False)
registry.register("synthesize", act_synthesize, "Synthesize a new agent from agentIds and requirements.",
                  requires_user=False)

registry.register("send_notification", act_send_notification, "Store a notification for the user.")
registry.register("get_notifications", act_get_notifications, "50 newest undismissed notifications.")
registry.register("dismiss_notification", act_dismiss_notification, "Dismiss a notification (notificationId).")

registry.register("orchestrate_agents", act_orchestrate_agents, "Tiered agent routing for a query.",
                  requires_user=False)
registry.register("route_task", act_route_task, "Supervisor and workers for a task type.", requires_user=False)
registry.register("record_agent_performance", act_record_agent_performance, "Record an agent outcome.",
                  requires_user=False)
registry.register("get_agent_memory", act_get_agent_memory, "Memories of an agent.", requires_user=False)

registry.register("auto_assign_task", act_auto_assign_task, "Queue a task with orchestrator-picked agents.")
registry.register("assign_task_to_agents", act_assign_task_to_agents, "Assign chosen agents to a task.")
registry.register("get_task_assignments", act_get_task_assignments, "Recent agent assignments.")
registry.register("record_task_completion", act_record_task_completion, "Complete an assigned task.")
registry.register("transfer_knowledge", act_transfer_knowledge, "Share agent memories with other agents.",
                  requires_user=False)

registry.register("create_webhook", act_create_webhook, "Create an automation webhook.")
registry.register("update_webhook", act_update_webhook, "Update a webhook (webhookId, updates).")
registry.register("delete_webhook", act_delete_webhook, "Delete a webhook.")
registry.register("toggle_webhook", act_toggle_webhook, "Flip a webhook's active flag.")
registry.register("get_webhooks", act_get_webhooks, "List the user's webhooks.")
registry.register("trigger_webhook", act_trigger_webhook, "POST a payload to one webhook.")
registry.register("auto_trigger_webhooks", act_auto_trigger_webhooks, "Fire matching webhooks for a trigger type.")
