# app/api/v1/tenants.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.principal import get_current_principal, require_resource, require_roles
from app.auth.context import Principal
from app.auth.permissions import PAGE
from app.core.errors import AppError, NotFound
from app.core.roles import Role
from app.crud import credentials
from app.db.session import get_db
from app.schemas.auth import TenantOut
from app.schemas.tenant import StoreCreate, StoreOut

router = APIRouter(tags=["tenants"])


# ---------------------------------------------------------
# Tenant (scope always from the token, never from a header or path)
# ---------------------------------------------------------
@router.get("/tenants/current", response_model=TenantOut)
async def get_current_tenant(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    tenant = await credentials.get_tenant(db, principal.tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", code="tenant_not_found")
    return tenant


@router.post("/tenants/current/deactivate", response_model=TenantOut)
async def deactivate_current_tenant(
    principal: Principal = Depends(require_roles(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
):
    """
    Closes the company account; all members are signed out.
    """
    tenant = await credentials.get_tenant(db, principal.tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", code="tenant_not_found")
    await credentials.deactivate_tenant(db, tenant)
    await db.commit()
    return tenant


# ---------------------------------------------------------
# Stores (page: stores)
# ---------------------------------------------------------
@router.get("/stores", response_model=List[StoreOut])
async def list_stores(
    principal: Principal = Depends(require_resource(PAGE.STORES)),
    db: AsyncSession = Depends(get_db),
):
    stores = await credentials.list_stores(db, principal.tenant_id)
    if principal.store_id is not None:
        stores = [s for s in stores if s.id == principal.store_id]
    return stores


@router.post("/stores", response_model=StoreOut, status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: StoreCreate,
    principal: Principal = Depends(require_resource(PAGE.STORES)),
    db: AsyncSession = Depends(get_db),
):
    # A store-scoped principal cannot open new stores
    principal.ensure_store_scope(None)

    tenant = await credentials.get_tenant(db, principal.tenant_id)
    try:
        store = await credentials.create_store(db, tenant, payload.name)
        await db.commit()
    except AppError:
        await db.rollback()
        raise
    return store
