from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from karyalay.api.errors import unwrap
from karyalay.api.schemas import (
    MessageResponse,
    OrderResponse,
    RenewalDetailsResponse,
    ReplyRequest,
    ReplyResponse,
    TicketDetailResponse,
    TicketPageResponse,
    TicketResponse,
)
from karyalay.dependencies.services import CustomerUser, get_renewal_service, get_ticket_service
from karyalay.subscriptions.models import RenewalDetails
from karyalay.subscriptions.renewal import RenewalService
from karyalay.tickets.service import TicketService
from karyalay.tickets.state import TicketPriority

router = APIRouter(prefix="/portal", tags=["portal"])


class TicketCreateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1)
    description: str = Field(default="")
    priority: TicketPriority = TicketPriority.MEDIUM
    subscription_id: str | None = None


class TicketCreatedResponse(BaseModel):
    ticket: TicketResponse
    notification_failed: bool = False


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
RenewalServiceDep = Annotated[RenewalService, Depends(get_renewal_service)]


@router.post("/tickets", response_model=TicketCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: CustomerUser,
) -> TicketCreatedResponse:
    data = payload.model_dump()
    data["customer_id"] = user.user_id
    result = await service.create_ticket(data)
    ticket = unwrap(result)
    return TicketCreatedResponse(
        ticket=TicketResponse.model_validate(ticket),
        notification_failed=result.notification_failed,
    )


@router.get("/tickets", response_model=TicketPageResponse)
async def list_my_tickets(
    service: TicketServiceDep,
    user: CustomerUser,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> TicketPageResponse:
    result = await service.get_customer_tickets(user.user_id, page=page, per_page=per_page)
    return TicketPageResponse.from_page(unwrap(result))


@router.get("/tickets/{ticket_id}", response_model=TicketDetailResponse)
async def get_my_ticket(ticket_id: str, service: TicketServiceDep, user: CustomerUser) -> TicketDetailResponse:
    ticket = unwrap(await service.get_customer_ticket(ticket_id, user.user_id))
    messages = unwrap(await service.get_customer_visible_messages(ticket_id))
    return TicketDetailResponse(
        ticket=TicketResponse.model_validate(ticket),
        messages=[MessageResponse.model_validate(message) for message in messages],
    )


@router.post("/tickets/{ticket_id}/replies", response_model=ReplyResponse, status_code=status.HTTP_201_CREATED)
async def reply_to_my_ticket(
    ticket_id: str,
    payload: ReplyRequest,
    service: TicketServiceDep,
    user: CustomerUser,
) -> ReplyResponse:
    message = unwrap(await service.add_customer_reply(ticket_id, user.user_id, payload.content))
    return ReplyResponse(message=MessageResponse.model_validate(message))


async def _owned_renewal(service: RenewalService, subscription_id: str, customer_id: str) -> RenewalDetails:
    details = unwrap(await service.get_renewal_details(subscription_id))
    if details.subscription.customer_id != customer_id:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return details


@router.get("/subscriptions/{subscription_id}/renewal", response_model=RenewalDetailsResponse)
async def get_renewal(
    subscription_id: str,
    service: RenewalServiceDep,
    user: CustomerUser,
) -> RenewalDetailsResponse:
    details = await _owned_renewal(service, subscription_id, user.user_id)
    return RenewalDetailsResponse.model_validate(details)


@router.post(
    "/subscriptions/{subscription_id}/renewal",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_renewal(
    subscription_id: str,
    service: RenewalServiceDep,
    user: CustomerUser,
) -> OrderResponse:
    await _owned_renewal(service, subscription_id, user.user_id)
    renewal = unwrap(await service.initiate_renewal(subscription_id))
    return OrderResponse.model_validate(renewal.order)
