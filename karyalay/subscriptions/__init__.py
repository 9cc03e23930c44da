"""Subscription renewal and expiration."""

from .expiration import ExpirationService
from .models import (
    ExpirationReport,
    Order,
    OrderStatus,
    Plan,
    PlanStatus,
    RenewalDetails,
    RenewalOrder,
    Subscription,
    SubscriptionStatus,
)
from .renewal import RenewalService, add_months
from .repository import SubscriptionRepository

__all__ = [
    "ExpirationReport",
    "ExpirationService",
    "Order",
    "OrderStatus",
    "Plan",
    "PlanStatus",
    "RenewalDetails",
    "RenewalOrder",
    "RenewalService",
    "Subscription",
    "SubscriptionRepository",
    "SubscriptionStatus",
    "add_months",
]
