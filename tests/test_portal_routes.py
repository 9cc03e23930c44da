from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from karyalay.dependencies import services as service_deps
from karyalay.dependencies.auth import Role, User
from karyalay.main import create_app
from karyalay.results import ServiceResult
from karyalay.subscriptions.models import (
    Order,
    OrderStatus,
    Plan,
    PlanStatus,
    RenewalDetails,
    RenewalOrder,
    Subscription,
    SubscriptionStatus,
)
from karyalay.tickets.models import Ticket, TicketMessage, TicketPage
from karyalay.tickets.state import AuthorType, TicketPriority, TicketStatus

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _ticket() -> Ticket:
    return Ticket(
        id="t-1",
        customer_id="cust-1",
        subscription_id=None,
        subject="Login issue",
        category="Technical",
        priority=TicketPriority.HIGH,
        status=TicketStatus.OPEN,
        assigned_to=None,
        created_at=NOW,
        updated_at=NOW,
    )


def _subscription(customer_id: str = "cust-1") -> Subscription:
    return Subscription(
        id="sub-1",
        customer_id=customer_id,
        plan_id="plan-1",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status=SubscriptionStatus.ACTIVE,
        assigned_port_id="port-7",
        order_id=None,
        created_at=NOW,
        updated_at=NOW,
    )


def _plan() -> Plan:
    return Plan(
        id="plan-1",
        name="Monthly",
        billing_period_months=1,
        mrp=Decimal("999.00"),
        discounted_price=Decimal("799.00"),
        currency="INR",
        status=PlanStatus.ACTIVE,
    )


def _details(customer_id: str = "cust-1") -> RenewalDetails:
    return RenewalDetails(
        subscription=_subscription(customer_id),
        plan=_plan(),
        current_end_date=date(2024, 1, 31),
        new_end_date=date(2024, 2, 29),
        renewal_amount=Decimal("799.00"),
        currency="INR",
        billing_period_months=1,
    )


@pytest.fixture
def portal_client():
    app = create_app()
    tickets = AsyncMock()
    renewals = AsyncMock()
    customer = User("cust-1", (Role.CUSTOMER,))

    async def override_tickets():
        return tickets

    async def override_renewals():
        return renewals

    app.dependency_overrides[service_deps.get_ticket_service] = override_tickets
    app.dependency_overrides[service_deps.get_renewal_service] = override_renewals
    app.dependency_overrides[service_deps.require_customer] = lambda: customer

    client = TestClient(app)
    try:
        yield client, tickets, renewals
    finally:
        app.dependency_overrides.clear()


def test_create_ticket_uses_authenticated_customer(portal_client):
    client, tickets, _ = portal_client
    tickets.create_ticket = AsyncMock(return_value=ServiceResult.ok(_ticket(), notification_failed=True))

    response = client.post(
        "/portal/tickets",
        json={"subject": "Login issue", "category": "Technical", "priority": "HIGH", "description": "help"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["ticket"]["status"] == "OPEN"
    assert body["notification_failed"] is True
    sent = tickets.create_ticket.await_args.args[0]
    assert sent["customer_id"] == "cust-1"
    assert sent["priority"] == TicketPriority.HIGH


def test_list_own_tickets(portal_client):
    client, tickets, _ = portal_client
    tickets.get_customer_tickets = AsyncMock(
        return_value=ServiceResult.ok(TicketPage(tickets=[_ticket()], total=1, page=1, per_page=20))
    )

    response = client.get("/portal/tickets")

    assert response.status_code == 200
    assert response.json()["total_pages"] == 1
    tickets.get_customer_tickets.assert_awaited_with("cust-1", page=1, per_page=20)


def test_view_ticket_uses_customer_visible_messages(portal_client):
    client, tickets, _ = portal_client
    tickets.get_customer_ticket = AsyncMock(return_value=ServiceResult.ok(_ticket()))
    tickets.get_customer_visible_messages = AsyncMock(
        return_value=ServiceResult.ok(
            [
                TicketMessage(
                    id="m-1",
                    ticket_id="t-1",
                    author_id="cust-1",
                    author_type=AuthorType.CUSTOMER,
                    content="help",
                    is_internal=False,
                    created_at=NOW,
                )
            ]
        )
    )

    response = client.get("/portal/tickets/t-1")

    assert response.status_code == 200
    assert len(response.json()["messages"]) == 1
    tickets.get_customer_ticket.assert_awaited_with("t-1", "cust-1")
    tickets.get_ticket_messages.assert_not_awaited()


def test_foreign_ticket_is_not_found(portal_client):
    client, tickets, _ = portal_client
    tickets.get_customer_ticket = AsyncMock(return_value=ServiceResult.not_found())

    response = client.get("/portal/tickets/t-9")

    assert response.status_code == 404


def test_renewal_details(portal_client):
    client, _, renewals = portal_client
    renewals.get_renewal_details = AsyncMock(return_value=ServiceResult.ok(_details()))

    response = client.get("/portal/subscriptions/sub-1/renewal")

    assert response.status_code == 200
    body = response.json()
    assert body["new_end_date"] == "2024-02-29"
    assert Decimal(body["renewal_amount"]) == Decimal("799.00")


def test_renewal_of_foreign_subscription_is_not_found(portal_client):
    client, _, renewals = portal_client
    renewals.get_renewal_details = AsyncMock(return_value=ServiceResult.ok(_details("cust-2")))

    response = client.post("/portal/subscriptions/sub-1/renewal")

    assert response.status_code == 404
    renewals.initiate_renewal.assert_not_awaited()


def test_start_renewal_returns_pending_order(portal_client):
    client, _, renewals = portal_client
    renewals.get_renewal_details = AsyncMock(return_value=ServiceResult.ok(_details()))
    order = Order(
        id="order-1",
        customer_id="cust-1",
        plan_id="plan-1",
        amount=Decimal("799.00"),
        currency="INR",
        status=OrderStatus.PENDING,
        created_at=NOW,
        updated_at=NOW,
    )
    renewals.initiate_renewal = AsyncMock(
        return_value=ServiceResult.ok(RenewalOrder(order=order, subscription=_subscription(), plan=_plan()))
    )

    response = client.post("/portal/subscriptions/sub-1/renewal")

    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"
