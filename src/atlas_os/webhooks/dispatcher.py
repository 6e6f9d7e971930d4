# src/atlas_os/webhooks/dispatcher.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ..core.ports import HttpPoster
from .webhook_store import AutomationWebhook, WebhookStore

logger = logging.getLogger(__name__)


class HttpxPoster:
    """HttpPoster over a short-lived httpx client."""

    def __init__(self, *, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def post(
            self,
            url: str,
            *,
            json: dict[str, Any],
            headers: dict[str, str] | None = None,
            timeout: float = 10.0,
    ) -> int:
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            resp = client.post(url, json=json, headers=headers)
        return resp.status_code


class WebhookDispatcher:
    def __init__(self, store: WebhookStore, poster: HttpPoster, *, timeout: float = 10.0) -> None:
        self._store = store
        self._poster = poster
        self._timeout = timeout

    def _deliver(self, webhook: AutomationWebhook, payload: dict[str, Any]) -> bool:
        body = {
            **payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "webhook_id": webhook.id,
        }
        headers = {"Content-Type": "application/json", **webhook.headers}
        try:
            status = self._poster.post(webhook.webhook_url, json=body, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Webhook %s delivery failed: %s", webhook.id, e)
            self._store.record_failure(webhook.id, str(e) or e.__class__.__name__)
            return False

        if status >= 400:
            logger.warning("Webhook %s answered HTTP %d", webhook.id, status)
            self._store.record_failure(webhook.id, f"HTTP {status}")
            return False

        self._store.record_success(webhook.id)
        logger.debug("Webhook %s delivered status=%d", webhook.id, status)
        return True

    def trigger(self, user_id: str, webhook_id: str, payload: dict[str, Any] | None = None) -> bool:
        webhook = self._store.require_webhook(webhook_id, user_id=user_id)
        return self._deliver(webhook, dict(payload or {}))

    def auto_trigger(self, user_id: str, trigger_type: str, payload: dict[str, Any] | None = None) -> list[str]:
        """Fire every active webhook of `trigger_type` whose conditions match. Returns the delivered ids."""
        data = dict(payload or {})
        delivered: list[str] = []
        for webhook in self._store.active_for_trigger(user_id, trigger_type):
            if not webhook.matches(data):
                continue
            if self._deliver(webhook, data):
                delivered.append(webhook.id)
        return delivered
