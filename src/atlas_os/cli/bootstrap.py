# src/atlas_os/cli/bootstrap.py

"""
Composition root.

Loads settings once, makes sure the local data dir exists and wires the
concrete stores, LLM client and HTTP poster into AppState.
"""

from __future__ import annotations

import logging

from ..agents.agent_store import AgentStore
from ..assistant.conversation_store import ConversationStore
from ..config import get_settings
from ..core.ports import LLMClient
from ..core.state import AppState
from ..evolution.evolution_store import EvolutionStore
from ..llm.client import GatewayLLMClient
from ..llm.errors import LLMNotConfiguredError
from ..llm.offline import OfflineLLMClient
from ..notifications.notification_store import NotificationStore
from ..personal.personal_store import PersonalStore
from ..service_log import ServiceLogStore
from ..tasks.task_store import TaskStore
from ..webhooks.dispatcher import HttpxPoster
from ..webhooks.webhook_store import WebhookStore
from ..widgets.widget_store import WidgetStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_llm_client(settings) -> LLMClient:
    try:
        return GatewayLLMClient(settings)
    except LLMNotConfiguredError as e:
        logger.warning("%s Using the offline LLM client.", e)
        return OfflineLLMClient()


def create_initial_state(*, settings=None, llm: LLMClient | None = None) -> AppState:
    """
    Create AppState from the provided settings (get_settings() when None).

    Every store shares one SQLite file; each opens its own short-lived
    connections, so they are safe to use from worker threads.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    db = settings.db_path

    state = AppState(
        settings=settings,
        llm=llm if llm is not None else create_llm_client(settings),
        http=HttpxPoster(),
        tasks=TaskStore(db),
        agents=AgentStore(db),
        widgets=WidgetStore(db),
        evolutions=EvolutionStore(db),
        personal=PersonalStore(db),
        notifications=NotificationStore(db),
        webhooks=WebhookStore(db),
        conversations=ConversationStore(db),
        service_logs=ServiceLogStore(db),
    )
    logger.info("State ready (db=%s, llm=%s)", db, type(state.llm).__name__)
    return state
