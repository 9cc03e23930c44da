from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from karyalay.db.session import create_session_factory, ensure_schema
from karyalay.subscriptions import SubscriptionRepository, SubscriptionStatus
from karyalay.tickets import NotificationError, TicketMessageRepository, TicketRepository, TicketService


class RecordingNotifier:
    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, str, str]] = []

    async def notify(self, customer_id: str, ticket_id: str, content: str) -> None:
        self.calls.append((customer_id, ticket_id, content))
        if self.fail:
            raise NotificationError("relay unavailable")


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    await ensure_schema(engine)
    return create_session_factory(engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ticket_service(session_factory, notifier) -> TicketService:
    return TicketService(
        TicketRepository(session_factory),
        TicketMessageRepository(session_factory),
        notifier=notifier,
    )


@pytest.fixture
def subscription_repository(session_factory) -> SubscriptionRepository:
    return SubscriptionRepository(session_factory)


@pytest_asyncio.fixture
async def monthly_plan(subscription_repository):
    return await subscription_repository.create_plan(
        name="Monthly",
        billing_period_months=1,
        mrp=Decimal("999.00"),
        discounted_price=Decimal("799.00"),
    )


@pytest_asyncio.fixture
async def subscription(subscription_repository, monthly_plan):
    return await subscription_repository.create_subscription(
        customer_id="cust-1",
        plan_id=monthly_plan.id,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status=SubscriptionStatus.ACTIVE,
        assigned_port_id="port-7",
    )


@pytest.fixture
def failing_ticket_service(session_factory) -> TicketService:
    return TicketService(
        TicketRepository(session_factory),
        TicketMessageRepository(session_factory),
        notifier=RecordingNotifier(fail=True),
    )
