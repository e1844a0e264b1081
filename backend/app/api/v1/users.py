# app/api/v1/users.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.principal import require_resource, require_roles
from app.auth.context import Principal
from app.auth.permissions import PAGE
from app.core import authentication
from app.core.errors import AppError, Forbidden, NotFound
from app.core.roles import Role
from app.crud import credentials
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import StatusResponse
from app.schemas.tenant import EmployeeCreate, EmployeeOut, RoleUpdate

router = APIRouter(prefix="/users", tags=["users"])

# Which roles each role may hand out when creating employees
CREATABLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.OWNER: frozenset({Role.OWNER, Role.MANAGER, Role.CASHIER}),
    Role.MANAGER: frozenset({Role.CASHIER}),
    Role.CASHIER: frozenset(),
}


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
async def _get_target_user(db: AsyncSession, principal: Principal, user_id: uuid.UUID) -> User:
    # tenant comes from the token; other tenants' users are "not found"
    user = await credentials.get_user(db, principal.tenant_id, user_id)
    if user is None:
        raise NotFound("User not found", code="user_not_found")
    principal.ensure_store_scope(user.store_id)
    return user


def _forbid_self(principal: Principal, user: User) -> None:
    if user.id == principal.user_id:
        raise Forbidden("You cannot change your own role or status", code="cannot_modify_self")


# ---------------------------------------------------------
# Employees (page: employees)
# ---------------------------------------------------------
@router.get("", response_model=List[EmployeeOut])
async def list_employees(
    principal: Principal = Depends(require_resource(PAGE.EMPLOYEES)),
    db: AsyncSession = Depends(get_db),
):
    """
    Store-scoped principals only see their own store.
    """
    users = await credentials.list_users(db, principal.tenant_id, store_id=principal.store_id)
    return users


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
async def create_employee(
    payload: EmployeeCreate,
    principal: Principal = Depends(require_resource(PAGE.EMPLOYEES)),
    db: AsyncSession = Depends(get_db),
):
    if payload.role not in CREATABLE_ROLES.get(principal.role, frozenset()):
        raise Forbidden(
            f"{principal.role.value} cannot create {payload.role.value} accounts",
            code="role_forbidden",
            detail={"role": principal.role.value, "requested_role": payload.role.value},
        )

    store_id = payload.store_id
    if store_id is None and principal.store_id is not None:
        store_id = principal.store_id
    principal.ensure_store_scope(store_id)

    tenant = await credentials.get_tenant(db, principal.tenant_id)
    try:
        user = await credentials.create_user(
            db,
            tenant,
            str(payload.email),
            payload.password,
            payload.role,
            store_id=store_id,
            full_name=payload.full_name,
        )
        await db.commit()
    except AppError:
        await db.rollback()
        raise
    return user


# ---------------------------------------------------------
# Privileged mutations (OWNER only)
# ---------------------------------------------------------
@router.patch("/{user_id}/role", response_model=EmployeeOut)
async def change_role(
    user_id: uuid.UUID,
    payload: RoleUpdate,
    principal: Principal = Depends(require_roles(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
):
    """
    Changing role or store invalidates the target's existing sessions.
    An omitted storeId keeps the current store; only an explicit null clears it.
    """
    user = await _get_target_user(db, principal, user_id)
    _forbid_self(principal, user)
    store_id = payload.store_id if "store_id" in payload.model_fields_set else user.store_id
    try:
        await credentials.set_role(db, user, payload.role, store_id=store_id)
        await db.commit()
    except AppError:
        await db.rollback()
        raise
    return user


@router.post("/{user_id}/disable", response_model=EmployeeOut)
async def disable_employee(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_roles(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_target_user(db, principal, user_id)
    _forbid_self(principal, user)
    await credentials.disable_user(db, user)
    await db.commit()
    return user


@router.post("/{user_id}/enable", response_model=EmployeeOut)
async def enable_employee(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_roles(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
):
    user = await _get_target_user(db, principal, user_id)
    await credentials.enable_user(db, user)
    await db.commit()
    return user


@router.post("/{user_id}/revoke-sessions", response_model=StatusResponse)
async def revoke_sessions(
    user_id: uuid.UUID,
    principal: Principal = Depends(require_roles(Role.OWNER)),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await authentication.revoke(db, principal.tenant_id, user_id)
    return StatusResponse()
