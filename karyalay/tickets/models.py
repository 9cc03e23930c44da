from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from .state import AuthorType, TicketPriority, TicketStatus

UNASSIGNED = "unassigned"


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket entry."""

    id: str
    customer_id: str
    subscription_id: str | None
    subject: str
    category: str
    priority: TicketPriority
    status: TicketStatus
    assigned_to: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_closed(self) -> bool:
        return self.status is TicketStatus.CLOSED


@dataclass(slots=True)
class TicketMessage:
    """A reply or internal note on a ticket."""

    id: str
    ticket_id: str
    author_id: str
    author_type: AuthorType
    content: str
    is_internal: bool
    created_at: datetime
    attachments: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class TicketFilters:
    """Filters accepted by the ticket listing query.

    ``assigned_to`` may be the ``UNASSIGNED`` sentinel to select tickets with no assignee.
    """

    customer_id: str | None = None
    subscription_id: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to: str | None = None
    category: str | None = None
    search: str | None = None


@dataclass(slots=True)
class TicketPage:
    tickets: Sequence[Ticket]
    total: int
    page: int
    per_page: int

    @property
    def total_pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return -(-self.total // self.per_page)
