from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    PENDING_ALLOCATION = "PENDING_ALLOCATION"


class PlanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass(slots=True)
class Plan:
    id: str
    name: str
    billing_period_months: int
    mrp: Decimal
    discounted_price: Decimal | None
    currency: str
    status: PlanStatus

    @property
    def renewal_amount(self) -> Decimal:
        """Discounted price when one is set and positive, list price otherwise."""

        if self.discounted_price is not None and self.discounted_price > 0:
            return self.discounted_price
        return self.mrp


@dataclass(slots=True)
class Subscription:
    id: str
    customer_id: str
    plan_id: str
    start_date: date
    end_date: date
    status: SubscriptionStatus
    assigned_port_id: str | None
    order_id: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Order:
    id: str
    customer_id: str
    plan_id: str
    amount: Decimal
    currency: str
    status: OrderStatus
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class RenewalDetails:
    subscription: Subscription
    plan: Plan
    current_end_date: date
    new_end_date: date
    renewal_amount: Decimal
    currency: str
    billing_period_months: int


@dataclass(slots=True)
class RenewalOrder:
    order: Order
    subscription: Subscription
    plan: Plan


@dataclass(slots=True)
class ExpirationReport:
    count: int
    subscription_ids: list[str]
    error: str | None = None
