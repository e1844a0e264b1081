from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Sequence

from app.auth.context import Principal
from app.auth.permissions import PAGE, PAGE_PRIORITY, PermissionEngine, redirect_candidates


class NavigationAction(str, enum.Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    ACCESS_DENIED = "access_denied"


@dataclass(frozen=True)
class NavigationDecision:
    action: NavigationAction
    page: str
    redirect_to: Optional[str] = None
    # caller must end the session (server side: token version bump)
    logout: bool = False


PUBLIC_PAGES = frozenset({PAGE.CUSTOMER_STOREFRONT})
KNOWN_PAGES = frozenset(PAGE_PRIORITY) | {PAGE.LANDING}


def _normalize_page(page: Optional[str]) -> str:
    return (page or "").strip().strip("/").lower()


def resolve_navigation(
    engine: PermissionEngine,
    principal: Optional[Principal],
    requested_page: Optional[str],
    priority: Sequence[str] = PAGE_PRIORITY,
) -> NavigationDecision:
    """
    Decide what a client-side navigation to `requested_page` should do.
    """
    page = _normalize_page(requested_page) or PAGE.LANDING

    if page in PUBLIC_PAGES:
        return NavigationDecision(NavigationAction.RENDER, page)

    if page == PAGE.VERIFY_ACCOUNT:
        if principal is None:
            return NavigationDecision(NavigationAction.RENDER, page)
        return NavigationDecision(
            NavigationAction.REDIRECT, page, redirect_to=PAGE.LANDING, logout=True
        )

    if principal is None:
        if page == PAGE.LANDING:
            return NavigationDecision(NavigationAction.RENDER, page)
        return NavigationDecision(NavigationAction.REDIRECT, page, redirect_to=PAGE.LANDING)

    # Signed-in users: landing and unknown pages mean "home"
    if page == PAGE.LANDING or page not in KNOWN_PAGES:
        page = PAGE.DASHBOARD

    if engine.can_access(principal.role, page):
        return NavigationDecision(NavigationAction.RENDER, page)

    target = engine.first_accessible_resource(principal.role, redirect_candidates(priority))
    if target is None:
        return NavigationDecision(NavigationAction.ACCESS_DENIED, page)
    return NavigationDecision(NavigationAction.REDIRECT, page, redirect_to=target)
