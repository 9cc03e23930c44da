from __future__ import annotations

from typing import Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from karyalay.db.models import TicketMessageTable
from karyalay.db.session import ensure_datetime

from .models import TicketMessage
from .state import AuthorType


class TicketMessageRepository:
    """Persistence helper for the `ticket_messages` thread store.

    Internal notes are filtered in the query itself so customer-facing reads never load them.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_message(self, message: TicketMessage) -> TicketMessage:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketMessageTable(
                        id=message.id,
                        ticket_id=message.ticket_id,
                        author_id=message.author_id,
                        author_type=message.author_type.value,
                        content=message.content,
                        is_internal=message.is_internal,
                        attachments=list(message.attachments),
                        created_at=message.created_at,
                    )
                )
        return message

    async def get_message(self, message_id: str) -> TicketMessage | None:
        async with self._session_factory() as session:
            row = await session.get(TicketMessageTable, message_id)
            if row is None:
                return None
            return self._table_to_message(row)

    async def list_for_ticket(
        self,
        ticket_id: str,
        *,
        include_internal: bool,
        limit: int = 1000,
        offset: int = 0,
    ) -> Sequence[TicketMessage]:
        statement = select(TicketMessageTable).where(TicketMessageTable.ticket_id == ticket_id)
        if not include_internal:
            statement = statement.where(TicketMessageTable.is_internal.is_(False))
        statement = (
            statement.order_by(TicketMessageTable.created_at.asc(), TicketMessageTable.id.asc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_message(row) for row in result.scalars().all()]

    async def count_for_ticket(self, ticket_id: str, *, include_internal: bool = True) -> int:
        statement = (
            select(func.count())
            .select_from(TicketMessageTable)
            .where(TicketMessageTable.ticket_id == ticket_id)
        )
        if not include_internal:
            statement = statement.where(TicketMessageTable.is_internal.is_(False))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    @staticmethod
    def _table_to_message(row: TicketMessageTable) -> TicketMessage:
        return TicketMessage(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            author_type=AuthorType(row.author_type),
            content=row.content,
            is_internal=bool(row.is_internal),
            attachments=list(row.attachments or []),
            created_at=ensure_datetime(row.created_at),
        )
