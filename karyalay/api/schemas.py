from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from karyalay.subscriptions.models import OrderStatus, SubscriptionStatus
from karyalay.tickets.models import TicketPage
from karyalay.tickets.state import AuthorType, TicketPriority, TicketStatus


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    subscription_id: str | None
    subject: str
    category: str
    priority: TicketPriority
    status: TicketStatus
    assigned_to: str | None
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    author_id: str
    author_type: AuthorType
    content: str
    is_internal: bool
    attachments: list[Any]
    created_at: datetime


class TicketDetailResponse(BaseModel):
    ticket: TicketResponse
    messages: list[MessageResponse]


class TicketPageResponse(BaseModel):
    tickets: list[TicketResponse]
    total: int
    page: int
    per_page: int
    total_pages: int

    @classmethod
    def from_page(cls, page: TicketPage) -> TicketPageResponse:
        return cls(
            tickets=[TicketResponse.model_validate(ticket) for ticket in page.tickets],
            total=page.total,
            page=page.page,
            per_page=page.per_page,
            total_pages=page.total_pages,
        )


class ReplyResponse(BaseModel):
    message: MessageResponse
    notification_failed: bool = False


class ReplyRequest(BaseModel):
    content: str = Field(..., min_length=1)


class StaffReplyRequest(ReplyRequest):
    is_internal: bool = False


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    plan_id: str
    start_date: date
    end_date: date
    status: SubscriptionStatus
    assigned_port_id: str | None


class RenewalDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription: SubscriptionResponse
    current_end_date: date
    new_end_date: date
    renewal_amount: Decimal
    currency: str
    billing_period_months: int


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    plan_id: str
    amount: Decimal
    currency: str
    status: OrderStatus
    created_at: datetime
