"""Support ticket domain models and services."""

from karyalay.results import ErrorKind, ServiceResult

from .messages import TicketMessageRepository
from .models import Ticket, TicketFilters, TicketMessage, TicketPage
from .notifications import LoggingTicketNotifier, NotificationError, TicketNotifier, WebhookTicketNotifier
from .repository import TicketRepository
from .service import CLOSED_TICKET_ERROR, TicketService
from .state import AuthorType, TicketPriority, TicketStatus

__all__ = [
    "AuthorType",
    "CLOSED_TICKET_ERROR",
    "ErrorKind",
    "LoggingTicketNotifier",
    "NotificationError",
    "ServiceResult",
    "Ticket",
    "TicketFilters",
    "TicketMessage",
    "TicketMessageRepository",
    "TicketNotifier",
    "TicketPage",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketStatus",
    "WebhookTicketNotifier",
]
