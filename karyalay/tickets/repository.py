from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from karyalay.db.models import TicketTable
from karyalay.db.session import ensure_datetime

from .models import UNASSIGNED, Ticket, TicketFilters
from .state import TicketPriority, TicketStatus


class TicketRepository:
    """Persistence helper wrapping the `tickets` table."""

    UPDATABLE_FIELDS = frozenset({"subject", "category", "priority", "status", "assigned_to", "subscription_id"})

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketTable(
                        id=ticket.id,
                        customer_id=ticket.customer_id,
                        subscription_id=ticket.subscription_id,
                        subject=ticket.subject,
                        category=ticket.category,
                        priority=ticket.priority.value,
                        status=ticket.status.value,
                        assigned_to=ticket.assigned_to,
                        created_at=ticket.created_at,
                        updated_at=ticket.updated_at,
                    )
                )
        return ticket

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def update_ticket(self, ticket_id: str, fields: Mapping[str, Any]) -> bool:
        """Write the allowed subset of ``fields``; unknown keys are ignored."""

        changes = {key: value for key, value in fields.items() if key in self.UPDATABLE_FIELDS}
        if not changes:
            return False

        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return False
            for key, value in changes.items():
                if isinstance(value, (TicketStatus, TicketPriority)):
                    value = value.value
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
            return True

    async def touch_ticket(self, ticket_id: str, updated_at: datetime | None = None) -> bool:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return False
            row.updated_at = updated_at or datetime.now(timezone.utc)
            await session.commit()
            return True

    async def list_tickets(
        self,
        filters: TicketFilters | None = None,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[Ticket]:
        statement = self._apply_filters(select(TicketTable), filters or TicketFilters())
        statement = (
            statement.order_by(TicketTable.updated_at.desc(), TicketTable.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def count_tickets(self, filters: TicketFilters | None = None) -> int:
        statement = self._apply_filters(select(func.count()).select_from(TicketTable), filters or TicketFilters())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    @staticmethod
    def _apply_filters(statement: Any, filters: TicketFilters) -> Any:
        if filters.customer_id:
            statement = statement.where(TicketTable.customer_id == filters.customer_id)
        if filters.subscription_id:
            statement = statement.where(TicketTable.subscription_id == filters.subscription_id)
        if filters.status is not None:
            statement = statement.where(TicketTable.status == filters.status.value)
        if filters.priority is not None:
            statement = statement.where(TicketTable.priority == filters.priority.value)
        if filters.assigned_to == UNASSIGNED:
            statement = statement.where(TicketTable.assigned_to.is_(None))
        elif filters.assigned_to:
            statement = statement.where(TicketTable.assigned_to == filters.assigned_to)
        if filters.category:
            statement = statement.where(TicketTable.category == filters.category)
        if filters.search:
            term = filters.search.strip().lower()
            statement = statement.where(
                or_(
                    func.lower(TicketTable.subject).contains(term, autoescape=True),
                    func.lower(TicketTable.id).contains(term, autoescape=True),
                )
            )
        return statement

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            customer_id=row.customer_id,
            subscription_id=row.subscription_id,
            subject=row.subject,
            category=row.category,
            priority=TicketPriority(row.priority),
            status=TicketStatus(row.status),
            assigned_to=row.assigned_to,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )
