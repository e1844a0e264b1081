# tests/test_access_api.py
from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.security import decode_access_token
from app.crud import credentials

from conftest import bearer, create_employee, login, register_company


async def owner_of(client, company: str, email: str | None = None, plan: str = "PROFESSIONAL") -> dict:
    res = await register_company(client, email or f"owner@{company}.com", company, plan=plan)
    assert res.status_code == 201, res.text
    return res.json()


async def create_store(client, token: str, name: str):
    return await client.post("/api/v1/stores", json={"name": name}, headers=bearer(token))


# ---------------------------------------------------------
# Role -> page guard on the API
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_cashier_is_denied_employees_and_stores(client):
    owner = await owner_of(client, "co1")
    await create_employee(client, owner["token"], "c@co1.com", "CASHIER")
    cashier_token = (await login(client, "c@co1.com")).json()["token"]

    for path in ("/api/v1/users", "/api/v1/stores"):
        res = await client.get(path, headers=bearer(cashier_token))
        assert res.status_code == 403
        detail = res.json()["detail"]
        assert detail["code"] == "rbac_forbidden"
        assert detail["role"] == "CASHIER"


@pytest.mark.asyncio
async def test_only_owner_can_change_roles(client):
    owner = await owner_of(client, "co1")
    manager = (await create_employee(client, owner["token"], "m@co1.com", "MANAGER")).json()
    cashier = (await create_employee(client, owner["token"], "c@co1.com", "CASHIER")).json()
    manager_token = (await login(client, "m@co1.com")).json()["token"]

    res = await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "MANAGER"},
        headers=bearer(manager_token),
    )
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "role_forbidden"

    # owner cannot demote themselves
    res = await client.patch(
        f"/api/v1/users/{owner['user']['id']}/role",
        json={"role": "CASHIER"},
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "cannot_modify_self"

    assert manager["role"] == "MANAGER"


@pytest.mark.asyncio
async def test_role_change_revokes_target_sessions(client):
    owner = await owner_of(client, "co1")
    cashier = (await create_employee(client, owner["token"], "c@co1.com", "CASHIER")).json()
    old_token = (await login(client, "c@co1.com")).json()["token"]

    res = await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "manager"},
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 200, res.text
    assert res.json()["role"] == "MANAGER"

    stale = await client.get("/api/v1/auth/me", headers=bearer(old_token))
    assert stale.status_code == 401

    fresh = (await login(client, "c@co1.com")).json()
    assert decode_access_token(fresh["token"]).role.value == "MANAGER"
    assert "employees" in fresh["accessible_pages"]


@pytest.mark.asyncio
async def test_owner_revokes_employee_sessions(client):
    owner = await owner_of(client, "co1")
    cashier = (await create_employee(client, owner["token"], "c@co1.com", "CASHIER")).json()
    cashier_token = (await login(client, "c@co1.com")).json()["token"]

    res = await client.post(
        f"/api/v1/users/{cashier['id']}/revoke-sessions",
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 200
    assert (await client.get("/api/v1/auth/me", headers=bearer(cashier_token))).status_code == 401


# ---------------------------------------------------------
# Employees
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_owner_creates_and_lists_employees(client):
    owner = await owner_of(client, "co1")

    res = await create_employee(client, owner["token"], "c@co1.com", "cashier")
    assert res.status_code == 201, res.text
    assert res.json()["role"] == "CASHIER"

    dup = await create_employee(client, owner["token"], "C@co1.com", "CASHIER")
    assert dup.status_code == 409
    assert dup.json()["detail"]["code"] == "email_exists"

    listed = await client.get("/api/v1/users", headers=bearer(owner["token"]))
    assert listed.status_code == 200
    emails = sorted(u["email"] for u in listed.json())
    assert emails == ["c@co1.com", "owner@co1.com"]


@pytest.mark.asyncio
async def test_plan_user_limit_over_api(client):
    owner = await owner_of(client, "co1", plan="STARTER")
    assert (await create_employee(client, owner["token"], "c1@co1.com", "CASHIER")).status_code == 201

    res = await create_employee(client, owner["token"], "c2@co1.com", "CASHIER")
    assert res.status_code == 403
    detail = res.json()["detail"]
    assert detail["code"] == "PLAN_LIMIT_EXCEEDED"
    assert detail["plan"] == "STARTER"
    assert detail["next_plan"] == "PROFESSIONAL"


@pytest.mark.asyncio
async def test_store_scoped_manager(client):
    owner = await owner_of(client, "co1")
    main = (await create_store(client, owner["token"], "Main")).json()
    branch = (await create_store(client, owner["token"], "Branch")).json()

    res = await create_employee(client, owner["token"], "m@co1.com", "MANAGER", store_id=main["id"])
    assert res.status_code == 201, res.text
    await create_employee(client, owner["token"], "other@co1.com", "CASHIER", store_id=branch["id"])
    manager_token = (await login(client, "m@co1.com")).json()["token"]
    assert decode_access_token(manager_token).store_id is not None

    # manager may only hand out CASHIER accounts
    res = await create_employee(client, manager_token, "m2@co1.com", "MANAGER")
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "role_forbidden"

    # defaults to the manager's own store
    res = await create_employee(client, manager_token, "c@co1.com", "CASHIER")
    assert res.status_code == 201
    assert res.json()["store_id"] == main["id"]

    # but never another store
    res = await create_employee(client, manager_token, "c2@co1.com", "CASHIER", store_id=branch["id"])
    assert res.status_code == 403
    assert res.json()["detail"]["code"] == "store_scope_forbidden"

    listed = await client.get("/api/v1/users", headers=bearer(manager_token))
    assert sorted(u["email"] for u in listed.json()) == ["c@co1.com", "m@co1.com"]


@pytest.mark.asyncio
async def test_unknown_store_is_rejected(client):
    owner = await owner_of(client, "co1")
    res = await create_employee(
        client,
        owner["token"],
        "c@co1.com",
        "CASHIER",
        store_id="00000000-0000-0000-0000-000000000001",
    )
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "invalid_store"


# ---------------------------------------------------------
# Stores
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_stores_are_per_tenant(client):
    o1 = await owner_of(client, "co1")
    o2 = await owner_of(client, "co2")

    assert (await create_store(client, o1["token"], "Main")).status_code == 201
    assert (await create_store(client, o2["token"], "Main")).status_code == 201
    dup = await create_store(client, o1["token"], " Main ")
    assert dup.status_code == 409
    assert dup.json()["detail"]["code"] == "store_exists"

    s1 = (await client.get("/api/v1/stores", headers=bearer(o1["token"]))).json()
    s2 = (await client.get("/api/v1/stores", headers=bearer(o2["token"]))).json()
    assert {s["tenant_id"] for s in s1} == {o1["tenant"]["id"]}
    assert {s["tenant_id"] for s in s2} == {o2["tenant"]["id"]}


@pytest.mark.asyncio
async def test_starter_plan_store_limit_over_api(client):
    owner = await owner_of(client, "co1", plan="STARTER")
    assert (await create_store(client, owner["token"], "Main")).status_code == 201

    res = await create_store(client, owner["token"], "Branch")
    assert res.status_code == 403
    assert res.json()["detail"]["resource"] == "stores"


# ---------------------------------------------------------
# Tenant isolation
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_other_tenants_users_are_not_found(client):
    o1 = await owner_of(client, "co1")
    o2 = await owner_of(client, "co2")
    victim = (await create_employee(client, o1["token"], "c@co1.com", "CASHIER")).json()

    for method, path, body in (
        ("PATCH", f"/api/v1/users/{victim['id']}/role", {"role": "OWNER"}),
        ("POST", f"/api/v1/users/{victim['id']}/disable", None),
        ("POST", f"/api/v1/users/{victim['id']}/revoke-sessions", None),
    ):
        res = await client.request(method, path, json=body, headers=bearer(o2["token"]))
        assert res.status_code == 404, path

    # untouched in its own tenant
    assert (await login(client, "c@co1.com")).status_code == 200

    listed = (await client.get("/api/v1/users", headers=bearer(o2["token"]))).json()
    assert [u["email"] for u in listed] == ["owner@co2.com"]


@pytest.mark.asyncio
async def test_current_tenant_comes_from_token(client):
    o1 = await owner_of(client, "co1")
    await owner_of(client, "co2")

    res = await client.get(
        "/api/v1/tenants/current",
        headers={**bearer(o1["token"]), "X-Tenant-Id": "co2"},
    )
    assert res.status_code == 200
    assert res.json()["id"] == o1["tenant"]["id"]


# ---------------------------------------------------------
# Revocation lookup: bounded, retried once, fails closed
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_slow_revocation_lookup_fails_closed(client, monkeypatch):
    owner = await owner_of(client, "co1")

    async def _hang(db, user_id):
        await asyncio.sleep(5)

    monkeypatch.setattr(settings, "REVOCATION_LOOKUP_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(credentials, "get_user_by_id", _hang)

    res = await client.get("/api/v1/auth/me", headers=bearer(owner["token"]))
    assert res.status_code == 401
    assert res.json()["detail"]["code"] == "session_unverifiable"


@pytest.mark.asyncio
async def test_revocation_lookup_retries_once(client, monkeypatch):
    owner = await owner_of(client, "co1")
    real_lookup = credentials.get_user_by_id
    calls = []

    async def _flaky(db, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            raise OperationalError("SELECT users", {}, Exception("connection reset"))
        return await real_lookup(db, user_id)

    monkeypatch.setattr(credentials, "get_user_by_id", _flaky)

    res = await client.get("/api/v1/auth/me", headers=bearer(owner["token"]))
    assert res.status_code == 200
    assert len(calls) == 2


# ---------------------------------------------------------
# Navigation
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_cashier_settings_redirects_to_dashboard(client):
    owner = await owner_of(client, "co1")
    await create_employee(client, owner["token"], "c@co1.com", "CASHIER")
    cashier_token = (await login(client, "c@co1.com")).json()["token"]

    res = await client.post(
        "/api/v1/navigation/resolve",
        json={"page": "settings"},
        headers=bearer(cashier_token),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["action"] == "redirect"
    assert body["redirect_to"] == "dashboard"
    assert body["logout"] is False

    pages = await client.get("/api/v1/navigation/pages", headers=bearer(cashier_token))
    assert pages.json() == {
        "role": "CASHIER",
        "pages": ["dashboard", "pos", "low-stock-alerts", "debt-management"],
    }


@pytest.mark.asyncio
async def test_anonymous_navigation(client):
    res = await client.post("/api/v1/navigation/resolve", json={"page": "orders"})
    assert res.json()["redirect_to"] == "landing"

    # an invalid token is just anonymous here
    res = await client.post(
        "/api/v1/navigation/resolve",
        json={"page": "customer-storefront"},
        headers=bearer("garbage"),
    )
    assert res.status_code == 200
    assert res.json()["action"] == "render"


@pytest.mark.asyncio
async def test_verify_account_signs_the_user_out(client):
    owner = await owner_of(client, "co1")

    res = await client.post(
        "/api/v1/navigation/resolve",
        json={"page": "verify-account"},
        headers=bearer(owner["token"]),
    )
    body = res.json()
    assert body["action"] == "redirect"
    assert body["redirect_to"] == "landing"
    assert body["logout"] is True

    assert (await client.get("/api/v1/auth/me", headers=bearer(owner["token"]))).status_code == 401


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    res = await client.get("/", headers={"X-Request-Id": "req-123"})
    assert res.status_code == 200
    assert res.headers["x-request-id"] == "req-123"


# ---------------------------------------------------------
# Company deactivation
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_deactivated_company_rejects_existing_tokens(client, sessionmaker):
    owner = await owner_of(client, "co1")

    # flipped out of band (support tooling), not through the API
    async with sessionmaker() as session:
        tenant = await credentials.get_tenant(session, uuid.UUID(owner["tenant"]["id"]))
        tenant.is_active = False
        await session.commit()

    me = await client.get("/api/v1/auth/me", headers=bearer(owner["token"]))
    assert me.status_code == 403
    assert me.json()["detail"]["code"] == "tenant_inactive"

    relogin = await login(client, "owner@co1.com")
    assert relogin.status_code == 403
    assert relogin.json()["detail"]["code"] == "tenant_inactive"


@pytest.mark.asyncio
async def test_owner_deactivates_company(client):
    owner = await owner_of(client, "co1")
    await create_employee(client, owner["token"], "m@co1.com", "MANAGER")
    manager_token = (await login(client, "m@co1.com")).json()["token"]

    denied = await client.post("/api/v1/tenants/current/deactivate", headers=bearer(manager_token))
    assert denied.status_code == 403
    assert denied.json()["detail"]["code"] == "role_forbidden"

    res = await client.post("/api/v1/tenants/current/deactivate", headers=bearer(owner["token"]))
    assert res.status_code == 200
    assert res.json()["is_active"] is False

    for token in (owner["token"], manager_token):
        me = await client.get("/api/v1/auth/me", headers=bearer(token))
        assert me.status_code == 403
        assert me.json()["detail"]["code"] == "tenant_inactive"

    # other companies are unaffected
    other = await owner_of(client, "co2")
    assert (await client.get("/api/v1/auth/me", headers=bearer(other["token"]))).status_code == 200


# ---------------------------------------------------------
# Role change keeps the store unless told otherwise
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_role_change_keeps_store_when_omitted(client):
    owner = await owner_of(client, "co1")
    main = (await create_store(client, owner["token"], "Main")).json()
    cashier = (
        await create_employee(client, owner["token"], "c@co1.com", "CASHIER", store_id=main["id"])
    ).json()
    assert cashier["store_id"] == main["id"]

    res = await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "MANAGER"},
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 200, res.text
    assert res.json()["role"] == "MANAGER"
    assert res.json()["store_id"] == main["id"]

    token = (await login(client, "c@co1.com")).json()["token"]
    assert str(decode_access_token(token).store_id) == main["id"]


@pytest.mark.asyncio
async def test_role_change_with_explicit_null_store_goes_tenant_wide(client):
    owner = await owner_of(client, "co1")
    main = (await create_store(client, owner["token"], "Main")).json()
    cashier = (
        await create_employee(client, owner["token"], "c@co1.com", "CASHIER", store_id=main["id"])
    ).json()

    res = await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "MANAGER", "storeId": None},
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 200, res.text
    assert res.json()["store_id"] is None

    # promoting a store-scoped user to OWNER needs the store cleared explicitly
    await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "CASHIER", "storeId": main["id"]},
        headers=bearer(owner["token"]),
    )
    res = await client.patch(
        f"/api/v1/users/{cashier['id']}/role",
        json={"role": "OWNER"},
        headers=bearer(owner["token"]),
    )
    assert res.status_code == 400
    assert res.json()["detail"]["code"] == "invalid_store_scope"
