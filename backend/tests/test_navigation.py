# tests/test_navigation.py
from __future__ import annotations

import uuid
from typing import Optional

import pytest

from app.auth.context import Principal
from app.auth.navigation import NavigationAction, resolve_navigation
from app.auth.permissions import PAGE, PermissionEngine, build_permission_matrix, load_permission_matrix
from app.core.errors import Forbidden
from app.core.roles import Role


@pytest.fixture()
def permissions() -> PermissionEngine:
    return PermissionEngine(load_permission_matrix())


def make_principal(role: Role, store_id: Optional[uuid.UUID] = None) -> Principal:
    return Principal(
        user_id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        store_id=store_id,
        role=role,
        token_version=0,
    )


def test_cashier_on_settings_is_redirected_to_dashboard(permissions):
    decision = resolve_navigation(permissions, make_principal(Role.CASHIER), "settings")

    assert decision.action == NavigationAction.REDIRECT
    assert decision.page == PAGE.SETTINGS
    assert decision.redirect_to == PAGE.DASHBOARD
    assert decision.logout is False


def test_allowed_page_renders(permissions):
    decision = resolve_navigation(permissions, make_principal(Role.CASHIER), "/pos/")
    assert decision.action == NavigationAction.RENDER
    assert decision.page == PAGE.POS


def test_anonymous_users_go_to_landing(permissions):
    decision = resolve_navigation(permissions, None, "dashboard")
    assert decision.action == NavigationAction.REDIRECT
    assert decision.redirect_to == PAGE.LANDING

    landing = resolve_navigation(permissions, None, "")
    assert landing.action == NavigationAction.RENDER
    assert landing.page == PAGE.LANDING


def test_storefront_is_public(permissions):
    for principal in (None, make_principal(Role.CASHIER)):
        decision = resolve_navigation(permissions, principal, "customer-storefront")
        assert decision.action == NavigationAction.RENDER
        assert decision.logout is False


def test_verify_account_renders_for_anonymous(permissions):
    decision = resolve_navigation(permissions, None, "verify-account")
    assert decision.action == NavigationAction.RENDER


def test_verify_account_logs_signed_in_users_out(permissions):
    decision = resolve_navigation(permissions, make_principal(Role.OWNER), "verify-account")
    assert decision.action == NavigationAction.REDIRECT
    assert decision.redirect_to == PAGE.LANDING
    assert decision.logout is True


def test_signed_in_landing_and_unknown_pages_go_home(permissions):
    owner = make_principal(Role.OWNER)
    for page in ("landing", "no-such-page"):
        decision = resolve_navigation(permissions, owner, page)
        assert decision.action == NavigationAction.RENDER
        assert decision.page == PAGE.DASHBOARD


def test_redirect_never_targets_excluded_pages():
    # dashboard removed: first candidate after it in priority order
    matrix = build_permission_matrix({"CASHIER": ["debt-management", "pos"]})
    permissions = PermissionEngine(matrix)

    decision = resolve_navigation(permissions, make_principal(Role.CASHIER), "settings")
    assert decision.action == NavigationAction.REDIRECT
    assert decision.redirect_to == PAGE.POS


def test_no_accessible_page_means_access_denied():
    permissions = PermissionEngine(build_permission_matrix({}))
    decision = resolve_navigation(permissions, make_principal(Role.MANAGER), "orders")
    assert decision.action == NavigationAction.ACCESS_DENIED
    assert decision.redirect_to is None


def test_store_scope_check():
    store_id = uuid.uuid4()
    scoped = make_principal(Role.CASHIER, store_id=store_id)
    scoped.ensure_store_scope(store_id)
    with pytest.raises(Forbidden):
        scoped.ensure_store_scope(uuid.uuid4())
    with pytest.raises(Forbidden):
        scoped.ensure_store_scope(None)

    # tenant-wide principals are never blocked
    make_principal(Role.OWNER).ensure_store_scope(uuid.uuid4())
