from __future__ import annotations

import functools
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError

from karyalay.metrics import NOTIFICATION_FAILURES, TICKET_REPLIES, TICKETS_CREATED
from karyalay.results import ErrorKind, ServiceResult

from .messages import TicketMessageRepository
from .models import Ticket, TicketFilters, TicketMessage, TicketPage
from .notifications import LoggingTicketNotifier, NotificationError, TicketNotifier
from .repository import TicketRepository
from .state import AuthorType, TicketPriority, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SUBJECT_MAX_LENGTH = 255
CLOSED_TICKET_ERROR = "Cannot reply to a closed ticket"

F = TypeVar("F", bound=Callable[..., Awaitable[ServiceResult[Any]]])


def _persistence_guard(action: str) -> Callable[[F], F]:
    """Turn store failures into a PERSISTENCE_FAILED result instead of an exception."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: TicketService, *args: Any, **kwargs: Any) -> ServiceResult[Any]:
            try:
                return await func(self, *args, **kwargs)
            except SQLAlchemyError:
                logger.exception("TicketService.%s failed", func.__name__)
                return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, f"An error occurred while {action}")

        return wrapper  # type: ignore[return-value]

    return decorator


def _clean(value: Any) -> str:
    return str(value).strip() if value is not None else ""


class TicketService:
    """High level orchestration for ticket lifecycle, replies and notifications."""

    def __init__(
        self,
        repository: TicketRepository,
        messages: TicketMessageRepository,
        *,
        notifier: TicketNotifier | None = None,
    ) -> None:
        self._repository = repository
        self._messages = messages
        self._notifier = notifier or LoggingTicketNotifier()

    @_persistence_guard("creating ticket")
    async def create_ticket(self, data: Mapping[str, Any]) -> ServiceResult[Ticket]:
        customer_id = _clean(data.get("customer_id"))
        subject = _clean(data.get("subject"))
        category = _clean(data.get("category"))
        description = _clean(data.get("description"))

        if not customer_id:
            return ServiceResult.invalid("customer_id is required")
        error = self._validate_subject(subject) or self._validate_category(category)
        if error:
            return ServiceResult.invalid(error)
        try:
            priority = TicketPriority.parse(data.get("priority") or TicketPriority.MEDIUM)
        except ValueError:
            return ServiceResult.invalid(f"Invalid priority. Must be one of: {TicketPriority.choices()}")

        now = datetime.now(timezone.utc)
        ticket = Ticket(
            id=str(uuid.uuid4()),
            customer_id=customer_id,
            subscription_id=_clean(data.get("subscription_id")) or None,
            subject=subject,
            category=category,
            priority=priority,
            status=TicketStatus.initial_state(),
            assigned_to=None,
            created_at=now,
            updated_at=now,
        )
        with tracer.start_as_current_span("tickets.create"):
            await self._repository.create_ticket(ticket)
        TICKETS_CREATED.inc()
        logger.info("Ticket %s created for customer %s", ticket.id, customer_id)

        if description:
            # Separate write: a failure here leaves the ticket without its opening message.
            try:
                await self._messages.create_message(
                    TicketMessage(
                        id=str(uuid.uuid4()),
                        ticket_id=ticket.id,
                        author_id=customer_id,
                        author_type=AuthorType.CUSTOMER,
                        content=description,
                        is_internal=False,
                        created_at=now,
                    )
                )
            except SQLAlchemyError:
                logger.exception("Opening message for ticket %s could not be stored", ticket.id)

        notified = await self._notify(ticket.customer_id, ticket.id, description or subject)
        return ServiceResult.ok(ticket, notification_failed=not notified)

    @_persistence_guard("retrieving ticket")
    async def get_ticket(self, ticket_id: str) -> ServiceResult[Ticket]:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            return ServiceResult.not_found()
        return ServiceResult.ok(ticket)

    @_persistence_guard("retrieving tickets")
    async def list_tickets(
        self,
        filters: TicketFilters | None = None,
        *,
        page: int = 1,
        per_page: int = 20,
    ) -> ServiceResult[TicketPage]:
        page = max(1, page)
        per_page = max(1, per_page)
        filters = filters or TicketFilters()
        total = await self._repository.count_tickets(filters)
        tickets = await self._repository.list_tickets(filters, limit=per_page, offset=(page - 1) * per_page)
        return ServiceResult.ok(TicketPage(tickets=tickets, total=total, page=page, per_page=per_page))

    async def get_customer_tickets(
        self, customer_id: str, *, page: int = 1, per_page: int = 20
    ) -> ServiceResult[TicketPage]:
        return await self.list_tickets(TicketFilters(customer_id=customer_id), page=page, per_page=per_page)

    @_persistence_guard("updating ticket")
    async def update_ticket(self, ticket_id: str, fields: Mapping[str, Any]) -> ServiceResult[Ticket]:
        changes: dict[str, Any] = {}
        if "subject" in fields:
            subject = _clean(fields["subject"])
            error = self._validate_subject(subject)
            if error:
                return ServiceResult.invalid(error)
            changes["subject"] = subject
        if "category" in fields:
            category = _clean(fields["category"])
            error = self._validate_category(category)
            if error:
                return ServiceResult.invalid(error)
            changes["category"] = category
        if "priority" in fields:
            try:
                changes["priority"] = TicketPriority.parse(fields["priority"])
            except ValueError:
                return ServiceResult.invalid(f"Invalid priority. Must be one of: {TicketPriority.choices()}")
        if "subscription_id" in fields:
            changes["subscription_id"] = _clean(fields["subscription_id"]) or None
        if not changes:
            return ServiceResult.invalid("No fields provided for update")

        return await self._apply_update(ticket_id, changes, "Failed to update ticket")

    @_persistence_guard("updating ticket status")
    async def update_ticket_status(self, ticket_id: str, new_status: str | TicketStatus) -> ServiceResult[Ticket]:
        try:
            status = TicketStatus.parse(new_status)
        except ValueError:
            return ServiceResult.invalid(f"Invalid status. Must be one of: {TicketStatus.choices()}")

        with tracer.start_as_current_span("tickets.update_status"):
            result = await self._apply_update(ticket_id, {"status": status}, "Failed to update ticket status")
        if result.success:
            logger.info("Ticket %s moved to %s", ticket_id, status.value)
        return result

    @_persistence_guard("assigning ticket")
    async def assign_ticket(self, ticket_id: str, assignee_id: str | None) -> ServiceResult[Ticket]:
        """Assign the ticket; an empty or missing assignee clears the assignment."""

        assignee = _clean(assignee_id) or None
        return await self._apply_update(ticket_id, {"assigned_to": assignee}, "Failed to assign ticket")

    async def is_ticket_closed(self, ticket_id: str) -> bool:
        try:
            ticket = await self._repository.get_ticket(ticket_id)
        except SQLAlchemyError:
            logger.exception("Closed check failed for ticket %s", ticket_id)
            return False
        return ticket is not None and ticket.is_closed

    @_persistence_guard("adding reply")
    async def add_reply(
        self,
        ticket_id: str,
        author_id: str,
        author_type: str | AuthorType,
        content: str,
        *,
        is_internal: bool = False,
        attachments: Sequence[Any] | None = None,
    ) -> ServiceResult[TicketMessage]:
        try:
            kind = AuthorType.parse(author_type)
        except ValueError:
            return ServiceResult.invalid("Invalid author_type. Must be CUSTOMER or ADMIN")
        if not _clean(author_id) or not _clean(content):
            return ServiceResult.invalid("author_id and content are required")

        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            return ServiceResult.not_found()
        if ticket.is_closed:
            return ServiceResult.fail(ErrorKind.CONFLICT, CLOSED_TICKET_ERROR)

        now = datetime.now(timezone.utc)
        message = TicketMessage(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            author_id=_clean(author_id),
            author_type=kind,
            content=_clean(content),
            is_internal=is_internal,
            created_at=now,
            attachments=list(attachments or []),
        )
        with tracer.start_as_current_span("tickets.add_reply"):
            await self._messages.create_message(message)
            await self._repository.touch_ticket(ticket_id, now)
        TICKET_REPLIES.inc(
            labels={"author_type": kind.value, "visibility": "internal" if is_internal else "public"}
        )
        return ServiceResult.ok(message)

    async def add_admin_reply(
        self,
        ticket_id: str,
        author_id: str,
        content: str,
        *,
        is_internal: bool = False,
    ) -> ServiceResult[TicketMessage]:
        """Reply as staff; public replies also notify the customer."""

        result = await self.add_reply(ticket_id, author_id, AuthorType.ADMIN, content, is_internal=is_internal)
        if not result.success or is_internal:
            return result

        try:
            ticket = await self._repository.get_ticket(ticket_id)
        except SQLAlchemyError:
            logger.exception("Could not load ticket %s for reply notification", ticket_id)
            ticket = None
        if ticket is None or not await self._notify(ticket.customer_id, ticket_id, content):
            result.notification_failed = True
        return result

    async def add_customer_reply(self, ticket_id: str, customer_id: str, content: str) -> ServiceResult[TicketMessage]:
        ownership = await self._owned_ticket(ticket_id, customer_id)
        if not ownership.success:
            return ServiceResult.fail(ownership.error_kind or ErrorKind.NOT_FOUND, ownership.error or "")
        return await self.add_reply(ticket_id, customer_id, AuthorType.CUSTOMER, content)

    async def get_customer_ticket(self, ticket_id: str, customer_id: str) -> ServiceResult[Ticket]:
        return await self._owned_ticket(ticket_id, customer_id)

    @_persistence_guard("retrieving messages")
    async def get_ticket_messages(
        self,
        ticket_id: str,
        *,
        include_internal: bool = True,
        limit: int = 1000,
        offset: int = 0,
    ) -> ServiceResult[Sequence[TicketMessage]]:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            return ServiceResult.not_found()
        messages = await self._messages.list_for_ticket(
            ticket_id, include_internal=include_internal, limit=limit, offset=offset
        )
        return ServiceResult.ok(messages)

    async def get_customer_visible_messages(self, ticket_id: str) -> ServiceResult[Sequence[TicketMessage]]:
        return await self.get_ticket_messages(ticket_id, include_internal=False)

    @_persistence_guard("retrieving message")
    async def get_message(self, message_id: str) -> ServiceResult[TicketMessage]:
        message = await self._messages.get_message(message_id)
        if message is None:
            return ServiceResult.not_found("Message not found")
        return ServiceResult.ok(message)

    async def count_ticket_messages(self, ticket_id: str, *, include_internal: bool = True) -> int:
        try:
            return await self._messages.count_for_ticket(ticket_id, include_internal=include_internal)
        except SQLAlchemyError:
            logger.exception("Message count failed for ticket %s", ticket_id)
            return 0

    @_persistence_guard("retrieving ticket")
    async def _owned_ticket(self, ticket_id: str, customer_id: str) -> ServiceResult[Ticket]:
        ticket = await self._repository.get_ticket(ticket_id)
        # Another customer's ticket is reported as missing rather than forbidden.
        if ticket is None or ticket.customer_id != customer_id:
            return ServiceResult.not_found()
        return ServiceResult.ok(ticket)

    async def _apply_update(self, ticket_id: str, changes: Mapping[str, Any], failure: str) -> ServiceResult[Ticket]:
        if await self._repository.get_ticket(ticket_id) is None:
            return ServiceResult.not_found()
        if not await self._repository.update_ticket(ticket_id, changes):
            return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, failure)
        updated = await self._repository.get_ticket(ticket_id)
        if updated is None:
            return ServiceResult.not_found()
        return ServiceResult.ok(updated)

    async def _notify(self, customer_id: str, ticket_id: str, content: str) -> bool:
        try:
            await self._notifier.notify(customer_id, ticket_id, content)
        except NotificationError:
            NOTIFICATION_FAILURES.inc()
            logger.warning("Notification for ticket %s failed", ticket_id, exc_info=True)
            return False
        except Exception:  # noqa: BLE001
            NOTIFICATION_FAILURES.inc()
            logger.exception("Notifier raised unexpectedly for ticket %s", ticket_id)
            return False
        return True

    @staticmethod
    def _validate_subject(subject: str) -> str | None:
        if not subject:
            return "Subject is required."
        if len(subject) > SUBJECT_MAX_LENGTH:
            return f"Subject must be at most {SUBJECT_MAX_LENGTH} characters."
        return None

    @staticmethod
    def _validate_category(category: str) -> str | None:
        if not category:
            return "Category is required."
        return None
