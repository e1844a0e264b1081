# app/api/v1/navigation.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.principal import get_current_principal, get_optional_principal, get_permission_engine
from app.auth.context import Principal
from app.auth.navigation import resolve_navigation
from app.auth.permissions import PermissionEngine
from app.core import authentication
from app.core.logging import get_logger
from app.db.session import get_db
from app.schemas.navigation import AccessiblePagesOut, NavigationOut, NavigationRequest

router = APIRouter(prefix="/navigation", tags=["navigation"])

logger = get_logger(__name__)


@router.post("/resolve", response_model=NavigationOut)
async def resolve(
    payload: NavigationRequest,
    principal: Optional[Principal] = Depends(get_optional_principal),
    engine: PermissionEngine = Depends(get_permission_engine),
    db: AsyncSession = Depends(get_db),
) -> NavigationOut:
    """
    Client route guard: render the page, redirect, or show "access denied".
    Bearer token optional; invalid tokens are treated as anonymous.
    """
    decision = resolve_navigation(engine, principal, payload.page)

    if decision.logout and principal is not None:
        await authentication.logout(db, principal.user)

    if decision.redirect_to is not None:
        logger.info(
            "navigation_redirect",
            page=decision.page,
            redirect_to=decision.redirect_to,
            logout=decision.logout,
        )

    return NavigationOut(
        action=decision.action,
        page=decision.page,
        redirect_to=decision.redirect_to,
        logout=decision.logout,
    )


@router.get("/pages", response_model=AccessiblePagesOut)
async def accessible_pages(
    principal: Principal = Depends(get_current_principal),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> AccessiblePagesOut:
    """
    Sidebar entries for the caller, in display order.
    """
    return AccessiblePagesOut(role=principal.role.value, pages=engine.accessible_resources(principal.role))
