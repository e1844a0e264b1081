# backend/app/core/authentication.py
"""
Registration, login and session invalidation.

Credential-store and token errors are collapsed here into what the caller
may see: every login mismatch is the same 401, whether the email exists or not.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AppError, Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from app.core.logging import get_logger
from app.core.roles import Role
from app.core.security import burn_password_check, create_access_token, digest_reset_token, generate_reset_token
from app.core.tier_limits import parse_plan
from app.crud import credentials
from app.models.tenant import Tenant
from app.models.user import User

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class AuthResult:
    token: str
    expires_at: datetime
    user: User
    tenant: Tenant


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _invalid_credentials() -> Unauthorized:
    return Unauthorized(INVALID_CREDENTIALS, code="invalid_credentials")


def _issue(user: User, tenant: Tenant) -> AuthResult:
    token, expires_at = create_access_token(user)
    return AuthResult(token=token, expires_at=expires_at, user=user, tenant=tenant)


# ---------------------------------------------------------
# Register
# ---------------------------------------------------------
async def register(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    company_name: str,
    full_name: Optional[str] = None,
    plan: Optional[str] = None,
) -> AuthResult:
    """
    Create a company and its first user (OWNER) in one transaction, then
    sign them in.
    """
    try:
        plan_value = parse_plan(plan)
    except ValueError:
        raise InvalidInput(f"Unknown plan: {plan!r}", code="invalid_plan")

    # Cheap checks before touching the database
    credentials.normalize_email(email)
    credentials.validate_password_policy(password)

    try:
        tenant = await credentials.create_tenant(db, company_name, plan_value)
        user = await credentials.create_user(
            db,
            tenant,
            email,
            password,
            Role.OWNER,
            full_name=full_name,
            enforce_plan_limit=False,
        )
        await db.commit()
    except IntegrityError:
        # Lost a race on a unique constraint at commit time
        await db.rollback()
        logger.info("registration_conflict", company=company_name)
        raise Conflict("Company or email already registered", code="registration_conflict")
    except AppError:
        await db.rollback()
        raise

    logger.info("tenant_registered", tenant_id=str(tenant.id), user_id=str(user.id), plan=tenant.plan)
    return _issue(user, tenant)


# ---------------------------------------------------------
# Login
# ---------------------------------------------------------
async def _find_login_candidate(
    db: AsyncSession,
    email: str,
    tenant_hint: Optional[str],
) -> Optional[User]:
    if tenant_hint and tenant_hint.strip():
        tenant = await credentials.get_tenant_by_slug(db, tenant_hint)
        if tenant is None:
            return None
        return await credentials.find_user_by_email(db, tenant.id, email)

    # No hint: the email must identify exactly one account
    matches = await credentials.find_users_by_email(db, email)
    if len(matches) != 1:
        return None
    return matches[0]


async def login(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    tenant_hint: Optional[str] = None,
) -> AuthResult:
    user = await _find_login_candidate(db, email, tenant_hint)

    if user is None:
        await asyncio.to_thread(burn_password_check, password)
        logger.info("login_failed", reason="no_account")
        raise _invalid_credentials()

    if not await asyncio.to_thread(credentials.verify_password, user, password):
        logger.info("login_failed", reason="bad_password", user_id=str(user.id))
        raise _invalid_credentials()

    # Only reveal account state to someone who proved the password
    if not user.is_active:
        logger.info("login_refused", reason="user_disabled", user_id=str(user.id))
        raise Forbidden("Account is disabled", code="account_disabled")

    tenant = await credentials.get_tenant(db, user.tenant_id)
    if tenant is None or not tenant.is_active:
        logger.info("login_refused", reason="tenant_inactive", user_id=str(user.id))
        raise Forbidden("Company account is inactive", code="tenant_inactive")

    user.last_login_at = _utcnow()
    await db.commit()

    logger.info("login_succeeded", tenant_id=str(tenant.id), user_id=str(user.id))
    return _issue(user, tenant)


# ---------------------------------------------------------
# Logout / revoke
# ---------------------------------------------------------
async def logout(db: AsyncSession, user: User) -> int:
    """
    Invalidate every token issued to `user` so far.
    """
    version = await credentials.revoke_tokens(db, user)
    await db.commit()
    logger.info("tokens_revoked", user_id=str(user.id), token_version=version)
    return version


async def revoke(db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID) -> int:
    user = await credentials.get_user(db, tenant_id, user_id)
    if user is None:
        raise NotFound("User not found", code="user_not_found")
    return await logout(db, user)


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
async def change_password(
    db: AsyncSession,
    user: User,
    *,
    current_password: str,
    new_password: str,
) -> AuthResult:
    if not await asyncio.to_thread(credentials.verify_password, user, current_password):
        raise InvalidInput("Current password is incorrect", code="invalid_current_password")

    try:
        await credentials.set_password(db, user, new_password)
        await db.commit()
    except AppError:
        await db.rollback()
        raise

    tenant = await credentials.get_tenant(db, user.tenant_id)
    logger.info("password_changed", user_id=str(user.id))
    return _issue(user, tenant)


async def request_password_reset(
    db: AsyncSession,
    *,
    email: str,
    tenant_hint: Optional[str] = None,
) -> Optional[str]:
    """
    Returns the raw reset token, or None when no single account matches.
    Callers must answer the same way in both cases.
    """
    user = await _find_login_candidate(db, email, tenant_hint)
    if user is None:
        logger.info("password_reset_requested", matched=False)
        return None

    raw, digest = generate_reset_token()
    user.password_reset_token_hash = digest
    user.password_reset_expires_at = _utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    await db.commit()

    logger.info("password_reset_requested", matched=True, user_id=str(user.id))
    return raw


async def reset_password(db: AsyncSession, *, token: str, new_password: str) -> User:
    raw = (token or "").strip()
    if not raw:
        raise InvalidInput("Invalid or expired reset token", code="invalid_reset_token")

    user = await credentials.find_user_by_reset_digest(db, digest_reset_token(raw))
    if (
        user is None
        or user.password_reset_expires_at is None
        or _as_utc(user.password_reset_expires_at) <= _utcnow()
    ):
        raise InvalidInput("Invalid or expired reset token", code="invalid_reset_token")

    try:
        # also clears the reset token (one-time use) and revokes sessions
        await credentials.set_password(db, user, new_password)
        await db.commit()
    except AppError:
        await db.rollback()
        raise

    logger.info("password_reset_completed", user_id=str(user.id))
    return user
