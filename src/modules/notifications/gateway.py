"""Outbound notification delivery over an HTTP webhook."""

from __future__ import annotations

import logging

import httpx

from src.config import settings
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.notifications.requester import EVENT_NOTIFICATION_REQUESTED

logger = logging.getLogger(__name__)


class NotificationGateway:
    """POSTs notification payloads to the configured webhook.

    With no webhook URL configured the payload is only logged.  Errors are
    raised to the caller; the outbox processor records them on the event row
    and retries up to the row's ``max_retries``.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.webhook_url = settings.notification_webhook_url if webhook_url is None else webhook_url
        self.timeout = settings.notification_timeout_seconds if timeout is None else timeout
        self._client = client

    def send(self, payload: dict) -> None:
        if not self.webhook_url:
            logger.info(
                "Notification %s for recipient %s (no webhook configured)",
                payload.get("event"),
                payload.get("recipient_id"),
            )
            return

        if self._client is not None:
            response = self._client.post(self.webhook_url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.webhook_url, json=payload)
        response.raise_for_status()
        logger.info(
            "Delivered notification %s to recipient %s (HTTP %d)",
            payload.get("event"),
            payload.get("recipient_id"),
            response.status_code,
        )


def deliver_notification(payload: dict) -> None:
    """Outbox handler for ``notification.requested`` events."""
    NotificationGateway().send(payload)


def register_notification_handlers() -> None:
    EventHandlerRegistry.register(EVENT_NOTIFICATION_REQUESTED, deliver_notification)
