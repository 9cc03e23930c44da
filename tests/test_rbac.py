import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from karyalay.dependencies.auth import Role, User, parse_token_entry, resolve_user_from_token, role_required
from karyalay.main import create_app


@pytest.mark.asyncio
async def test_role_required_allows_any_listed_role():
    dependency = role_required(Role.ADMIN, Role.SUPPORT)
    user = User("agent-7", (Role.SUPPORT,))
    result = await dependency(user)  # type: ignore[arg-type]
    assert result.user_id == "agent-7"


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_user():
    dependency = role_required(Role.ADMIN, Role.SUPPORT)
    user = User("cust-1", (Role.CUSTOMER,))
    with pytest.raises(HTTPException) as exc:
        await dependency(user)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def test_parse_token_entry_reads_user_and_roles():
    assert parse_token_entry("admin:admin, support") == ("admin", (Role.ADMIN, Role.SUPPORT))
    with pytest.raises(ValueError):
        parse_token_entry("no-roles")


def test_resolve_user_from_token():
    tokens = {"t-1": "cust-1:customer"}

    user = resolve_user_from_token("t-1", tokens)
    anonymous = resolve_user_from_token(None, tokens)

    assert user.user_id == "cust-1"
    assert user.has_role(Role.CUSTOMER)
    assert not user.is_staff
    assert anonymous.roles == ()
    with pytest.raises(HTTPException) as exc:
        resolve_user_from_token("bogus", tokens)
    assert exc.value.status_code == 401


def test_ping_endpoints():
    client = TestClient(create_app())

    assert client.get("/ping").json() == {"status": "ok"}
    assert client.get("/ping/secure").status_code == 403
    assert client.get("/ping/secure", headers={"Authorization": "Bearer nope"}).status_code == 401
    secure = client.get("/ping/secure", headers={"Authorization": "Bearer support-token"})
    assert secure.json() == {"status": "ok", "user": "support"}
