"""Database models and utilities."""

from .models import (
    OrderTable,
    PlanTable,
    SubscriptionTable,
    TicketMessageTable,
    TicketTable,
    UserTable,
)
from .session import create_engine_from_dsn, create_session_factory, ensure_datetime, ensure_schema

__all__ = [
    "OrderTable",
    "PlanTable",
    "SubscriptionTable",
    "TicketMessageTable",
    "TicketTable",
    "UserTable",
    "create_engine_from_dsn",
    "create_session_factory",
    "ensure_datetime",
    "ensure_schema",
]
