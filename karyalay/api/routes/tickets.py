from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from karyalay.api.errors import unwrap
from karyalay.api.schemas import (
    MessageResponse,
    ReplyResponse,
    StaffReplyRequest,
    TicketDetailResponse,
    TicketPageResponse,
    TicketResponse,
)
from karyalay.dependencies.services import StaffUser, get_ticket_service
from karyalay.tickets.models import TicketFilters
from karyalay.tickets.service import TicketService
from karyalay.tickets.state import TicketPriority, TicketStatus

router = APIRouter(prefix="/admin/tickets", tags=["admin-tickets"])


class TicketUpdateRequest(BaseModel):
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = Field(default=None, min_length=1)
    priority: TicketPriority | None = None
    subscription_id: str | None = None

    def changes(self) -> dict[str, object]:
        fields = self.model_dump(exclude_unset=True)
        if not fields:
            raise HTTPException(status_code=400, detail="No fields provided for update")
        return fields


class TicketStatusRequest(BaseModel):
    # Validated against TicketStatus by the service.
    status: str


class TicketAssignRequest(BaseModel):
    assigned_to: str | None = None


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


@router.get("", response_model=TicketPageResponse)
async def list_tickets(
    service: TicketServiceDep,
    _: StaffUser,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    priority: TicketPriority | None = Query(default=None),
    assigned_to: str | None = Query(default=None, description="User id or 'unassigned'"),
    customer_id: str | None = Query(default=None),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> TicketPageResponse:
    filters = TicketFilters(
        customer_id=customer_id,
        status=status_filter,
        priority=priority,
        assigned_to=assigned_to,
        category=category,
        search=search,
    )
    result = await service.list_tickets(filters, page=page, per_page=per_page)
    return TicketPageResponse.from_page(unwrap(result))


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep, _: StaffUser) -> TicketDetailResponse:
    ticket = unwrap(await service.get_ticket(ticket_id))
    messages = unwrap(await service.get_ticket_messages(ticket_id, include_internal=True))
    return TicketDetailResponse(
        ticket=TicketResponse.model_validate(ticket),
        messages=[MessageResponse.model_validate(message) for message in messages],
    )


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    service: TicketServiceDep,
    _: StaffUser,
) -> TicketResponse:
    ticket = unwrap(await service.update_ticket(ticket_id, payload.changes()))
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusRequest,
    service: TicketServiceDep,
    _: StaffUser,
) -> TicketResponse:
    ticket = unwrap(await service.update_ticket_status(ticket_id, payload.status))
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    _: StaffUser,
) -> TicketResponse:
    ticket = unwrap(await service.assign_ticket(ticket_id, payload.assigned_to))
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/replies", response_model=ReplyResponse, status_code=201)
async def reply_to_ticket(
    ticket_id: str,
    payload: StaffReplyRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> ReplyResponse:
    result = await service.add_admin_reply(ticket_id, user.user_id, payload.content, is_internal=payload.is_internal)
    message = unwrap(result)
    return ReplyResponse(
        message=MessageResponse.model_validate(message),
        notification_failed=result.notification_failed,
    )
