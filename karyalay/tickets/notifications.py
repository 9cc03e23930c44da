"""Customer notification collaborators for ticket activity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a notification could not be delivered."""


class TicketNotifier(Protocol):
    async def notify(self, customer_id: str, ticket_id: str, content: str) -> None:
        ...


class LoggingTicketNotifier:
    """Notifier used when no delivery channel is configured."""

    async def notify(self, customer_id: str, ticket_id: str, content: str) -> None:
        logger.info("Ticket %s notification for customer %s (%d chars)", ticket_id, customer_id, len(content))


@dataclass(slots=True)
class WebhookTicketNotifier:
    """Hand notifications to an outbound mail relay over HTTP."""

    url: str
    app_url: str = "http://localhost:8000"
    timeout: float = 5.0
    client: httpx.AsyncClient | None = None

    def ticket_url(self, ticket_id: str) -> str:
        return f"{self.app_url.rstrip('/')}/portal/tickets/{quote(ticket_id)}"

    async def notify(self, customer_id: str, ticket_id: str, content: str) -> None:
        payload = {
            "customer_id": customer_id,
            "ticket_id": ticket_id,
            "content": content,
            "ticket_url": self.ticket_url(ticket_id),
        }
        try:
            if self.client is not None:
                response = await self.client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NotificationError(f"Notification for ticket {ticket_id} failed: {exc}") from exc
