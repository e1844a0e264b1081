from __future__ import annotations

import asyncio
import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import Principal
from app.auth.permissions import PermissionEngine
from app.core.config import settings
from app.core.errors import Forbidden, TokenError, Unauthorized
from app.core.logging import bind_principal_context, get_logger
from app.core.roles import Role, parse_role
from app.core.security import bearer_scheme, decode_access_token
from app.crud import credentials
from app.db.session import get_db
from app.models.tenant import Tenant
from app.models.user import User

logger = get_logger(__name__)

# Transient failures worth exactly one retry before failing closed
_TRANSIENT_LOOKUP_ERRORS = (asyncio.TimeoutError, OperationalError, InterfaceError)


def get_permission_engine(request: Request) -> PermissionEngine:
    """
    The engine built once by create_application().
    """
    return request.app.state.permission_engine


async def _fetch_user_and_tenant(db: AsyncSession, user_id: uuid.UUID) -> tuple[Optional[User], Optional[Tenant]]:
    user = await credentials.get_user_by_id(db, user_id)
    if user is None:
        return None, None
    return user, await credentials.get_tenant(db, user.tenant_id)


async def _load_user_for_revocation_check(
    db: AsyncSession, user_id: uuid.UUID
) -> tuple[Optional[User], Optional[Tenant]]:
    timeout = settings.REVOCATION_LOOKUP_TIMEOUT_SECONDS
    for attempt in (1, 2):
        try:
            return await asyncio.wait_for(_fetch_user_and_tenant(db, user_id), timeout=timeout)
        except _TRANSIENT_LOOKUP_ERRORS as e:
            logger.warning("revocation_lookup_failed", attempt=attempt, error=type(e).__name__)
            try:
                await db.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.warning("revocation_lookup_rollback_failed", error=type(rollback_exc).__name__)

    # Fail closed
    raise Unauthorized("Could not verify session", code="session_unverifiable")


async def resolve_principal(db: AsyncSession, token: str) -> Principal:
    """
    Verify the token, then check it against the live user record.

    Raises TokenError (bad token), Unauthorized (unknown user or revoked
    session) or Forbidden (disabled account or company).
    """
    claims = decode_access_token(token)

    user, tenant = await _load_user_for_revocation_check(db, claims.user_id)
    if user is None or tenant is None or user.tenant_id != claims.tenant_id:
        raise Unauthorized("Invalid token", code="invalid_token")

    if not tenant.is_active:
        raise Forbidden("Company account is inactive", code="tenant_inactive")

    if not user.is_active:
        raise Forbidden("Account is disabled", code="account_disabled")

    if (
        user.token_version != claims.token_version
        or user.role != claims.role.value
        or user.store_id != claims.store_id
    ):
        raise Unauthorized("Session has been revoked", code="token_revoked")

    bind_principal_context(tenant_id=user.tenant_id, user_id=user.id, store_id=user.store_id)
    return Principal(
        user_id=user.id,
        tenant_id=user.tenant_id,
        store_id=user.store_id,
        role=claims.role,
        token_version=user.token_version,
        user=user,
    )


async def get_current_principal(
    auth: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Dependency for protected endpoints.
    """
    if auth is None or not auth.credentials:
        raise Unauthorized("Not authenticated", code="not_authenticated")

    try:
        return await resolve_principal(db, auth.credentials)
    except TokenError as e:
        # Expired, forged and garbled tokens all look the same to the caller
        logger.info("token_rejected", reason=e.code)
        raise Unauthorized("Invalid token", code="invalid_token")


async def get_optional_principal(
    auth: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[Principal]:
    """
    Same as get_current_principal, but anonymous instead of 401/403.
    """
    if auth is None or not auth.credentials:
        return None
    try:
        return await resolve_principal(db, auth.credentials)
    except (Unauthorized, Forbidden) as e:
        logger.info("optional_principal_rejected", reason=e.code)
        return None


async def get_current_user(principal: Principal = Depends(get_current_principal)) -> User:
    return principal.user


def require_resource(resource: str) -> Callable:
    """
    Enforce the role -> resource matrix for the current principal.
    """

    async def _checker(
        principal: Principal = Depends(get_current_principal),
        engine: PermissionEngine = Depends(get_permission_engine),
    ) -> Principal:
        if not engine.can_access(principal.role, resource):
            logger.info("access_denied", resource=resource, role=principal.role.value)
            raise Forbidden(
                "You do not have permission to access this resource.",
                code="rbac_forbidden",
                detail={"resource": resource, "role": principal.role.value},
            )
        return principal

    return _checker


def require_roles(*allowed_roles: Role | str) -> Callable:
    """
    Enforce principal.role in allowed_roles (privileged mutations).
    """
    allowed = frozenset(parse_role(r) for r in allowed_roles)

    async def _checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise Forbidden(
                f"Insufficient role: {principal.role.value}. Allowed: {', '.join(sorted(r.value for r in allowed))}",
                code="role_forbidden",
                detail={"role": principal.role.value},
            )
        return principal

    return _checker
