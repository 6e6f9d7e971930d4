# src/atlas_os/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .ports import HttpPoster, LLMClient

if TYPE_CHECKING:
    from ..agents.agent_store import AgentStore
    from ..assistant.conversation_store import ConversationStore
    from ..evolution.evolution_store import EvolutionStore
    from ..notifications.notification_store import NotificationStore
    from ..personal.personal_store import PersonalStore
    from ..service_log import ServiceLogStore
    from ..tasks.task_store import TaskStore
    from ..webhooks.webhook_store import WebhookStore
    from ..widgets.widget_store import WidgetStore


@dataclass
class AppState:
    # Settings object (atlas_os.config.Settings or a test stand-in).
    settings: Any
    llm: LLMClient
    http: HttpPoster

    tasks: TaskStore
    agents: AgentStore
    widgets: WidgetStore
    evolutions: EvolutionStore
    personal: PersonalStore
    notifications: NotificationStore
    webhooks: WebhookStore
    conversations: ConversationStore
    service_logs: ServiceLogStore
