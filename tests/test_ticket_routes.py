from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from karyalay.dependencies import services as service_deps
from karyalay.dependencies.auth import Role, User
from karyalay.main import create_app
from karyalay.results import ErrorKind, ServiceResult
from karyalay.tickets.models import Ticket, TicketFilters, TicketMessage, TicketPage
from karyalay.tickets.state import AuthorType, TicketPriority, TicketStatus


def _make_ticket(*, status: TicketStatus = TicketStatus.OPEN, assigned_to: str | None = None) -> Ticket:
    now = datetime.now(timezone.utc)
    return Ticket(
        id=str(uuid4()),
        customer_id="cust-1",
        subscription_id=None,
        subject="Login issue",
        category="Technical",
        priority=TicketPriority.HIGH,
        status=status,
        assigned_to=assigned_to,
        created_at=now,
        updated_at=now,
    )


def _make_message(ticket_id: str, *, is_internal: bool = False) -> TicketMessage:
    return TicketMessage(
        id=str(uuid4()),
        ticket_id=ticket_id,
        author_id="agent-7",
        author_type=AuthorType.ADMIN,
        content="Looking into it",
        is_internal=is_internal,
        created_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()
    staff = User("agent-7", (Role.SUPPORT,))

    async def override_service():
        return service

    app.dependency_overrides[service_deps.get_ticket_service] = override_service
    app.dependency_overrides[service_deps.require_staff] = lambda: staff

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_list_tickets_passes_filters_and_paging(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=TicketStatus.IN_PROGRESS)
    service.list_tickets = AsyncMock(
        return_value=ServiceResult.ok(TicketPage(tickets=[ticket], total=1, page=1, per_page=20))
    )

    response = client.get("/admin/tickets", params={"status": "IN_PROGRESS", "assigned_to": "unassigned"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["tickets"][0]["status"] == "IN_PROGRESS"
    service.list_tickets.assert_awaited_with(
        TicketFilters(status=TicketStatus.IN_PROGRESS, assigned_to="unassigned"), page=1, per_page=20
    )


def test_get_ticket_includes_internal_notes(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    service.get_ticket = AsyncMock(return_value=ServiceResult.ok(ticket))
    service.get_ticket_messages = AsyncMock(
        return_value=ServiceResult.ok([_make_message(ticket.id), _make_message(ticket.id, is_internal=True)])
    )

    response = client.get(f"/admin/tickets/{ticket.id}")

    assert response.status_code == 200
    assert [message["is_internal"] for message in response.json()["messages"]] == [False, True]
    service.get_ticket_messages.assert_awaited_with(ticket.id, include_internal=True)


def test_get_missing_ticket_returns_404(ticket_client):
    client, service = ticket_client
    service.get_ticket = AsyncMock(return_value=ServiceResult.not_found())

    response = client.get("/admin/tickets/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Ticket not found"


def test_invalid_status_returns_422(ticket_client):
    client, service = ticket_client
    service.update_ticket_status = AsyncMock(return_value=ServiceResult.invalid("Invalid status. Must be one of: OPEN"))

    response = client.post("/admin/tickets/t-1/status", json={"status": "ARCHIVED"})

    assert response.status_code == 422
    service.update_ticket_status.assert_awaited_with("t-1", "ARCHIVED")


def test_assign_with_null_clears_assignee(ticket_client):
    client, service = ticket_client
    service.assign_ticket = AsyncMock(return_value=ServiceResult.ok(_make_ticket()))

    response = client.post("/admin/tickets/t-1/assign", json={"assigned_to": None})

    assert response.status_code == 200
    assert response.json()["assigned_to"] is None
    service.assign_ticket.assert_awaited_with("t-1", None)


def test_reply_on_closed_ticket_returns_conflict(ticket_client):
    client, service = ticket_client
    service.add_admin_reply = AsyncMock(
        return_value=ServiceResult.fail(ErrorKind.CONFLICT, "Cannot reply to a closed ticket")
    )

    response = client.post("/admin/tickets/t-1/replies", json={"content": "hello"})

    assert response.status_code == 409
    assert response.json()["detail"] == "Cannot reply to a closed ticket"


def test_internal_note_is_posted_as_staff_user(ticket_client):
    client, service = ticket_client
    message = _make_message("t-1", is_internal=True)
    service.add_admin_reply = AsyncMock(return_value=ServiceResult.ok(message))

    response = client.post("/admin/tickets/t-1/replies", json={"content": "note", "is_internal": True})

    assert response.status_code == 201
    assert response.json()["notification_failed"] is False
    service.add_admin_reply.assert_awaited_with("t-1", "agent-7", "note", is_internal=True)


def test_empty_update_is_rejected(ticket_client):
    client, _ = ticket_client

    response = client.patch("/admin/tickets/t-1", json={})

    assert response.status_code == 400


def test_persistence_failure_returns_503(ticket_client):
    client, service = ticket_client
    service.update_ticket = AsyncMock(
        return_value=ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "An error occurred while updating ticket")
    )

    response = client.patch("/admin/tickets/t-1", json={"priority": "LOW"})

    assert response.status_code == 503
    service.update_ticket.assert_awaited_with("t-1", {"priority": TicketPriority.LOW})


def test_admin_routes_reject_customers():
    app = create_app()
    app.dependency_overrides[service_deps.get_ticket_service] = lambda: AsyncMock()
    client = TestClient(app)

    response = client.get("/admin/tickets", headers={"Authorization": "Bearer customer-token"})

    assert response.status_code == 403
