"""SQLModel table definitions for the Karyalay data layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class UserTable(SQLModel, table=True):
    """Staff and customer accounts."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    role: str = Field(sa_column=Column(String(50), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class PlanTable(SQLModel, table=True):
    """Purchasable subscription plans."""

    __tablename__ = "plans"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    billing_period_months: int = Field(sa_column=Column(Integer, nullable=False))
    mrp: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    discounted_price: Decimal | None = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))
    currency: str = Field(default="INR", sa_column=Column(String(3), nullable=False))
    status: str = Field(default="ACTIVE", sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class OrderTable(SQLModel, table=True):
    """Purchase and renewal orders."""

    __tablename__ = "orders"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    customer_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    plan_id: str = Field(sa_column=Column(String(36), ForeignKey("plans.id"), nullable=False))
    amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    currency: str = Field(sa_column=Column(String(3), nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class SubscriptionTable(SQLModel, table=True):
    """Customer subscriptions to a plan."""

    __tablename__ = "subscriptions"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    customer_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    plan_id: str = Field(sa_column=Column(String(36), ForeignKey("plans.id"), nullable=False))
    start_date: date = Field(sa_column=Column(Date, nullable=False))
    end_date: date = Field(sa_column=Column(Date, nullable=False, index=True))
    status: str = Field(sa_column=Column(String(30), nullable=False))
    assigned_port_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    order_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Support tickets raised by customers."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    customer_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    subscription_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    subject: str = Field(sa_column=Column(String(255), nullable=False))
    category: str = Field(sa_column=Column(String(100), nullable=False))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    status: str = Field(sa_column=Column(String(30), nullable=False, index=True))
    assigned_to: str | None = Field(default=None, sa_column=Column(String(36), nullable=True, index=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class TicketMessageTable(SQLModel, table=True):
    """Messages and internal notes belonging to a ticket."""

    __tablename__ = "ticket_messages"

    id: str = Field(primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    author_id: str = Field(sa_column=Column(String(36), nullable=False))
    author_type: str = Field(sa_column=Column(String(20), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    is_internal: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    attachments: list[Any] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
