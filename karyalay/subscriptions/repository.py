from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from karyalay.db.models import OrderTable, PlanTable, SubscriptionTable
from karyalay.db.session import ensure_datetime

from .models import Order, OrderStatus, Plan, PlanStatus, Subscription, SubscriptionStatus


def _to_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


class SubscriptionRepository:
    """Persistence helper for plans, subscriptions and renewal orders."""

    UPDATABLE_FIELDS = frozenset({"start_date", "end_date", "status", "assigned_port_id", "plan_id"})

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_plan(
        self,
        *,
        name: str,
        billing_period_months: int,
        mrp: Decimal,
        discounted_price: Decimal | None = None,
        currency: str = "INR",
        status: PlanStatus = PlanStatus.ACTIVE,
        plan_id: str | None = None,
    ) -> Plan:
        row = PlanTable(
            id=plan_id or str(uuid.uuid4()),
            name=name,
            billing_period_months=billing_period_months,
            mrp=mrp,
            discounted_price=discounted_price,
            currency=currency,
            status=status.value,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return self._table_to_plan(row)

    async def get_plan(self, plan_id: str) -> Plan | None:
        async with self._session_factory() as session:
            row = await session.get(PlanTable, plan_id)
            return self._table_to_plan(row) if row is not None else None

    async def create_subscription(
        self,
        *,
        customer_id: str,
        plan_id: str,
        start_date: date,
        end_date: date,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        assigned_port_id: str | None = None,
        order_id: str | None = None,
        subscription_id: str | None = None,
    ) -> Subscription:
        now = datetime.now(timezone.utc)
        row = SubscriptionTable(
            id=subscription_id or str(uuid.uuid4()),
            customer_id=customer_id,
            plan_id=plan_id,
            start_date=start_date,
            end_date=end_date,
            status=status.value,
            assigned_port_id=assigned_port_id,
            order_id=order_id,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return self._table_to_subscription(row)

    async def get_subscription(self, subscription_id: str) -> Subscription | None:
        async with self._session_factory() as session:
            row = await session.get(SubscriptionTable, subscription_id)
            return self._table_to_subscription(row) if row is not None else None

    async def list_customer_subscriptions(self, customer_id: str) -> Sequence[Subscription]:
        statement = (
            select(SubscriptionTable)
            .where(SubscriptionTable.customer_id == customer_id)
            .order_by(SubscriptionTable.created_at.desc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_subscription(row) for row in result.scalars().all()]

    async def list_expired(self, today: date) -> Sequence[Subscription]:
        """ACTIVE subscriptions whose end date is strictly before ``today``."""

        statement = (
            select(SubscriptionTable)
            .where(SubscriptionTable.status == SubscriptionStatus.ACTIVE.value)
            .where(SubscriptionTable.end_date < today)
            .order_by(SubscriptionTable.end_date.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_subscription(row) for row in result.scalars().all()]

    async def update_subscription(self, subscription_id: str, fields: Mapping[str, Any]) -> bool:
        changes = {key: value for key, value in fields.items() if key in self.UPDATABLE_FIELDS}
        if not changes:
            return False
        async with self._session_factory() as session:
            row = await session.get(SubscriptionTable, subscription_id)
            if row is None:
                return False
            for key, value in changes.items():
                if isinstance(value, SubscriptionStatus):
                    value = value.value
                elif key in {"start_date", "end_date"}:
                    value = _to_date(value)
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
            return True

    async def update_status(self, subscription_id: str, status: SubscriptionStatus) -> bool:
        return await self.update_subscription(subscription_id, {"status": status})

    async def create_order(
        self,
        *,
        customer_id: str,
        plan_id: str,
        amount: Decimal,
        currency: str,
        status: OrderStatus = OrderStatus.PENDING,
    ) -> Order:
        now = datetime.now(timezone.utc)
        row = OrderTable(
            id=str(uuid.uuid4()),
            customer_id=customer_id,
            plan_id=plan_id,
            amount=amount,
            currency=currency,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return self._table_to_order(row)

    async def get_order(self, order_id: str) -> Order | None:
        async with self._session_factory() as session:
            row = await session.get(OrderTable, order_id)
            return self._table_to_order(row) if row is not None else None

    async def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        async with self._session_factory() as session:
            row = await session.get(OrderTable, order_id)
            if row is None:
                return False
            row.status = status.value
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
            return True

    @staticmethod
    def _table_to_plan(row: PlanTable) -> Plan:
        return Plan(
            id=row.id,
            name=row.name,
            billing_period_months=int(row.billing_period_months),
            mrp=Decimal(row.mrp),
            discounted_price=Decimal(row.discounted_price) if row.discounted_price is not None else None,
            currency=row.currency,
            status=PlanStatus(row.status),
        )

    @staticmethod
    def _table_to_subscription(row: SubscriptionTable) -> Subscription:
        return Subscription(
            id=row.id,
            customer_id=row.customer_id,
            plan_id=row.plan_id,
            start_date=_to_date(row.start_date),
            end_date=_to_date(row.end_date),
            status=SubscriptionStatus(row.status),
            assigned_port_id=row.assigned_port_id,
            order_id=row.order_id,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_order(row: OrderTable) -> Order:
        return Order(
            id=row.id,
            customer_id=row.customer_id,
            plan_id=row.plan_id,
            amount=Decimal(row.amount),
            currency=row.currency,
            status=OrderStatus(row.status),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )
