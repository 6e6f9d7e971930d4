# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from atlas_os.agents.agent_store import AgentStore
from atlas_os.assistant.conversation_store import ConversationStore
from atlas_os.core.state import AppState
from atlas_os.evolution.evolution_store import EvolutionStore
from atlas_os.notifications.notification_store import NotificationStore
from atlas_os.personal.personal_store import PersonalStore
from atlas_os.service_log import ServiceLogStore
from atlas_os.tasks.task_store import TaskStore
from atlas_os.webhooks.webhook_store import WebhookStore
from atlas_os.widgets.widget_store import WidgetStore

from .fakes import FakeHttpPoster, FakeLLMClient


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the engines.

    A SimpleNamespace instead of the real config keeps tests independent of
    the environment.
    """
    return SimpleNamespace(
        app_name="atlas-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        db_path=tmp_path / "atlas.sqlite3",
        http_host="127.0.0.1",
        http_port=0,
        llm_models=["test/model-a", "test/model-b"],
        llm_analysis_model="test/analysis",
        llm_evolution_model="test/evolution",
        llm_embedding_model="test/embedding",
        llm_max_retries=1,
        llm_retry_delay_seconds=0.0,
        extra_headers={},
        scheduler_enabled=False,
        sweep_interval_seconds=0.01,
        sweep_batch_limit=20,
        user_batch_limit=10,
        user_cooldown_seconds=30.0,
        sweep_cooldown_seconds=60.0,
        max_task_errors=5,
        sweep_task_delay_seconds=0.0,
        webhook_timeout_seconds=2.0,
        service_log_persist=True,
        service_log_min_level="debug",
    )


@pytest.fixture()
def db_path(settings: SimpleNamespace) -> Path:
    return settings.db_path


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture()
def http() -> FakeHttpPoster:
    return FakeHttpPoster()


@pytest.fixture()
def task_store(db_path: Path) -> TaskStore:
    return TaskStore(db_path)


@pytest.fixture()
def agent_store(db_path: Path) -> AgentStore:
    return AgentStore(db_path)


@pytest.fixture()
def widget_store(db_path: Path) -> WidgetStore:
    return WidgetStore(db_path)


@pytest.fixture()
def notification_store(db_path: Path) -> NotificationStore:
    return NotificationStore(db_path)


@pytest.fixture()
def personal_store(db_path: Path) -> PersonalStore:
    return PersonalStore(db_path)


@pytest.fixture()
def conversation_store(db_path: Path) -> ConversationStore:
    return ConversationStore(db_path)


@pytest.fixture()
def webhook_store(db_path: Path) -> WebhookStore:
    return WebhookStore(db_path)


@pytest.fixture()
def state(
        settings: SimpleNamespace,
        llm: FakeLLMClient,
        http: FakeHttpPoster,
        task_store: TaskStore,
        agent_store: AgentStore,
        widget_store: WidgetStore,
        notification_store: NotificationStore,
        personal_store: PersonalStore,
        conversation_store: ConversationStore,
        webhook_store: WebhookStore,
        db_path: Path,
) -> AppState:
    """
    AppState wired with deterministic fakes.

    The SQLite stores are real: their queries are part of what is tested.
    """
    return AppState(
        settings=settings,
        llm=llm,
        http=http,
        tasks=task_store,
        agents=agent_store,
        widgets=widget_store,
        evolutions=EvolutionStore(db_path),
        personal=personal_store,
        notifications=notification_store,
        webhooks=webhook_store,
        conversations=conversation_store,
        service_logs=ServiceLogStore(db_path),
    )
