from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from karyalay.dependencies.auth import Role, User, role_required
from karyalay.subscriptions.renewal import RenewalService
from karyalay.tickets.service import TicketService

require_staff = role_required(Role.ADMIN, Role.SUPPORT)
require_customer = role_required(Role.CUSTOMER)

StaffUser = Annotated[User, Depends(require_staff)]
CustomerUser = Annotated[User, Depends(require_customer)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


async def get_renewal_service(request: Request) -> RenewalService:
    service = getattr(request.app.state, "renewal_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Renewal service is not configured")
    return service
