# tests/test_webhooks.py

from __future__ import annotations

import json

import httpx
import pytest

from atlas_os.webhooks.dispatcher import HttpxPoster, WebhookDispatcher
from atlas_os.webhooks.webhook_store import WebhookNotFoundError, WebhookProvider, WebhookStore

from .fakes import FakeHttpPoster


def _hook(store: WebhookStore, **kwargs):
    params = {
        "user_id": "u1",
        "name": "Zap",
        "webhook_url": "https://hooks.example.com/zap",
        "trigger_type": "task_completed",
    }
    params.update(kwargs)
    return store.create_webhook(**params)


def test_create_defaults_and_validation(webhook_store: WebhookStore) -> None:
    hook = _hook(webhook_store)

    assert hook.provider is WebhookProvider.ZAPIER
    assert hook.is_active is True
    assert hook.trigger_count == 0

    with pytest.raises(ValueError, match="http"):
        _hook(webhook_store, webhook_url="ftp://example.com")
    with pytest.raises(ValueError, match="Unknown webhook provider"):
        _hook(webhook_store, provider="ifttt")
    with pytest.raises(ValueError, match="name is required"):
        _hook(webhook_store, name=" ")


def test_update_toggle_delete_are_owner_scoped(webhook_store: WebhookStore) -> None:
    hook = _hook(webhook_store)

    assert webhook_store.update_webhook(hook.id, user_id="u2", name="Hijack") is False
    assert webhook_store.update_webhook(hook.id, user_id="u1", name="Renamed", provider="N8N") is True
    updated = webhook_store.require_webhook(hook.id)
    assert updated.name == "Renamed"
    assert updated.provider is WebhookProvider.N8N

    assert webhook_store.toggle_webhook(hook.id, user_id="u1").is_active is False
    assert webhook_store.toggle_webhook(hook.id, user_id="u1").is_active is True
    with pytest.raises(WebhookNotFoundError):
        webhook_store.toggle_webhook(hook.id, user_id="u2")

    assert webhook_store.delete_webhook(hook.id, user_id="u2") is False
    assert webhook_store.delete_webhook(hook.id, user_id="u1") is True
    assert webhook_store.list_webhooks("u1") == []


def test_trigger_posts_payload_and_counts(webhook_store: WebhookStore, http: FakeHttpPoster) -> None:
    hook = _hook(webhook_store, headers={"X-Token": "abc"})
    dispatcher = WebhookDispatcher(webhook_store, http, timeout=3.0)

    assert dispatcher.trigger("u1", hook.id, {"task": "t1"}) is True

    sent = http.posted[0]
    assert sent.url == "https://hooks.example.com/zap"
    assert sent.json["task"] == "t1"
    assert sent.json["webhook_id"] == hook.id
    assert "timestamp" in sent.json
    assert sent.headers == {"Content-Type": "application/json", "X-Token": "abc"}
    assert sent.timeout == 3.0

    stored = webhook_store.require_webhook(hook.id)
    assert stored.trigger_count == 1
    assert stored.last_triggered_at is not None


def test_http_error_status_counts_as_failure(webhook_store: WebhookStore) -> None:
    hook = _hook(webhook_store)
    dispatcher = WebhookDispatcher(webhook_store, FakeHttpPoster(status_for=lambda _url: 502))

    assert dispatcher.trigger("u1", hook.id) is False

    stored = webhook_store.require_webhook(hook.id)
    assert stored.trigger_count == 0
    assert stored.error_count == 1
    assert stored.last_error == "HTTP 502"


def test_transport_error_counts_as_failure(webhook_store: WebhookStore) -> None:
    hook = _hook(webhook_store)

    def refuse(_url: str) -> int:
        raise httpx.ConnectError("connection refused")

    dispatcher = WebhookDispatcher(webhook_store, FakeHttpPoster(status_for=refuse))

    assert dispatcher.trigger("u1", hook.id) is False
    assert webhook_store.require_webhook(hook.id).last_error == "connection refused"


def test_trigger_unknown_webhook(webhook_store: WebhookStore, http: FakeHttpPoster) -> None:
    hook = _hook(webhook_store)
    dispatcher = WebhookDispatcher(webhook_store, http)

    with pytest.raises(WebhookNotFoundError):
        dispatcher.trigger("u2", hook.id)
    assert http.posted == []


def test_auto_trigger_filters_type_activity_and_conditions(
        webhook_store: WebhookStore,
        http: FakeHttpPoster,
) -> None:
    plain = _hook(webhook_store, name="Any completion")
    matching = _hook(webhook_store, name="High only", trigger_conditions={"priority": "high"})
    _hook(webhook_store, name="Low only", trigger_conditions={"priority": "low"})
    paused = _hook(webhook_store, name="Paused")
    webhook_store.toggle_webhook(paused.id, user_id="u1")
    _hook(webhook_store, name="Email", trigger_type="email_received")
    _hook(webhook_store, user_id="u2", name="Someone else")

    delivered = WebhookDispatcher(webhook_store, http).auto_trigger("u1", "task_completed", {"priority": "high"})

    assert sorted(delivered) == sorted([plain.id, matching.id])
    assert len(http.posted) == 2


def test_httpx_poster_returns_status() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    poster = HttpxPoster(transport=httpx.MockTransport(handler))

    status = poster.post("https://hooks.example.com/x", json={"a": 1}, headers={"X-Test": "1"})

    assert status == 204
    assert seen[0].method == "POST"
    assert seen[0].headers["X-Test"] == "1"
    assert json.loads(seen[0].content) == {"a": 1}
