"""Notification delivery adapters."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from cake_orders.domain.notifications import Notification

_logger = logging.getLogger(__name__)


class NotificationClient(Protocol):
    """Interface for delivering notifications."""

    async def send(self, notification: Notification) -> None:
        """Deliver a notification."""


@dataclass
class HttpxWebhookNotificationClient:
    """Posts notifications to a mail relay webhook."""

    webhook_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, webhook_url: str) -> "HttpxWebhookNotificationClient":
        """Create a webhook client with a managed httpx session."""
        return cls(webhook_url=webhook_url, http_client=httpx.AsyncClient())

    async def send(self, notification: Notification) -> None:
        """POST the notification as JSON."""
        response = await self.http_client.post(
            self.webhook_url,
            json={
                "type": notification.type.value,
                "tracking_code": notification.tracking_code,
                "from": notification.sender,
                "to": notification.recipient,
                "subject": notification.subject,
                "body": notification.body,
            },
            timeout=10,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


@dataclass
class LoggingNotificationClient:
    """Used when no webhook is configured; records what would have been sent."""

    async def send(self, notification: Notification) -> None:
        """Log the notification instead of delivering it."""
        _logger.info(
            "Notification not delivered (no webhook): type=%s to=%s",
            notification.type.value,
            notification.recipient,
        )

    async def close(self) -> None:
        """Nothing to release."""
