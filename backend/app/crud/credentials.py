# app/crud/credentials.py
from __future__ import annotations

import asyncio
import re
import uuid
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import Conflict, Forbidden, InvalidInput
from app.core.logging import get_logger
from app.core.roles import TENANT_WIDE_ROLES, Role, UserStatus
from app.core.security import check_password, hash_password
from app.core.text import collapse_whitespace
from app.core.tier_limits import Plan, get_limits_for_plan, get_next_plan
from app.models.store import Store
from app.models.tenant import Tenant
from app.models.user import User

logger = get_logger(__name__)

_HAS_LETTER_RE = re.compile(r"[A-Za-z]")
_HAS_DIGIT_RE = re.compile(r"\d")


# ---------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------
def normalize_email(email: str) -> str:
    """
    Lower-cased, trimmed, syntactically valid email. Raises InvalidInput.
    """
    candidate = User.normalize_email(email)
    if not candidate:
        raise InvalidInput("Email is required", code="invalid_email")
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidInput(f"Invalid email: {e}", code="invalid_email")
    return candidate


def validate_password_policy(raw_password: str) -> None:
    min_length = settings.PASSWORD_MIN_LENGTH
    if not isinstance(raw_password, str) or len(raw_password) < min_length:
        raise InvalidInput(
            f"Password must be at least {min_length} characters long",
            code="weak_password",
        )
    if not _HAS_LETTER_RE.search(raw_password) or not _HAS_DIGIT_RE.search(raw_password):
        raise InvalidInput(
            "Password must contain at least one letter and one digit",
            code="weak_password",
        )


async def _hash_off_loop(raw_password: str) -> str:
    # argon2 is deliberately slow; keep it off the event loop
    return await asyncio.to_thread(hash_password, raw_password)


def _plan_limit_error(tenant: Tenant, kind: str, limit: int, current: int) -> Forbidden:
    return Forbidden(
        f"{kind.capitalize()} limit exceeded for this plan. Upgrade your plan to add more {kind}.",
        code="PLAN_LIMIT_EXCEEDED",
        detail={
            "plan": tenant.plan,
            "resource": kind,
            "limit": limit,
            "current": current,
            "next_plan": get_next_plan(tenant.plan),
        },
    )


# ---------------------------------------------------------
# Tenants
# ---------------------------------------------------------
async def get_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> Optional[Tenant]:
    return await db.get(Tenant, tenant_id, populate_existing=True)


async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Optional[Tenant]:
    stmt = select(Tenant).where(Tenant.slug == Tenant.slugify(slug))
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_tenant(db: AsyncSession, name: str, plan: Plan = Plan.STARTER) -> Tenant:
    """
    Adds a tenant to the session (flushed, not committed).
    Name uniqueness is enforced on the slug.
    """
    clean_name = collapse_whitespace(name) or ""
    slug = Tenant.slugify(clean_name)
    if not slug:
        raise InvalidInput("Company name must contain letters or digits", code="invalid_company_name")

    if await get_tenant_by_slug(db, slug) is not None:
        raise Conflict("A company with this name already exists", code="tenant_exists")

    tenant = Tenant(name=clean_name, slug=slug, plan=Plan(plan).value, is_active=True)
    db.add(tenant)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A company with this name already exists", code="tenant_exists")
    return tenant


async def deactivate_tenant(db: AsyncSession, tenant: Tenant) -> Tenant:
    """
    Close a company account. Every session of every member stops working
    on its next request; login is refused.
    """
    tenant.is_active = False
    await db.flush()
    logger.info("tenant_deactivated", tenant_id=str(tenant.id))
    return tenant


# ---------------------------------------------------------
# Stores
# ---------------------------------------------------------
async def get_store(db: AsyncSession, tenant_id: uuid.UUID, store_id: uuid.UUID) -> Optional[Store]:
    stmt = select(Store).where(Store.tenant_id == tenant_id, Store.id == store_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_stores(db: AsyncSession, tenant_id: uuid.UUID) -> list[Store]:
    stmt = select(Store).where(Store.tenant_id == tenant_id).order_by(Store.name)
    return list((await db.execute(stmt)).scalars().all())


async def count_stores(db: AsyncSession, tenant_id: uuid.UUID) -> int:
    stmt = select(func.count(Store.id)).where(Store.tenant_id == tenant_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def create_store(db: AsyncSession, tenant: Tenant, name: str) -> Store:
    clean_name = collapse_whitespace(name) or ""
    if not clean_name:
        raise InvalidInput("Store name is required", code="invalid_store_name")

    limit = get_limits_for_plan(tenant.plan).max_stores
    current = await count_stores(db, tenant.id)
    if current >= limit:
        raise _plan_limit_error(tenant, "stores", limit, current)

    existing = (
        await db.execute(select(Store).where(Store.tenant_id == tenant.id, Store.name == clean_name))
    ).scalar_one_or_none()
    if existing is not None:
        raise Conflict("A store with this name already exists", code="store_exists")

    store = Store(tenant_id=tenant.id, name=clean_name)
    db.add(store)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A store with this name already exists", code="store_exists")
    return store


# ---------------------------------------------------------
# Users
# ---------------------------------------------------------
async def get_user(db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID) -> Optional[User]:
    """
    Tenant-scoped lookup: a user of another tenant is simply not found.
    """
    stmt = select(User).where(User.tenant_id == tenant_id, User.id == user_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    """
    Unscoped lookup, only for resolving verified token claims.
    """
    stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_user_by_email(db: AsyncSession, tenant_id: uuid.UUID, email: str) -> Optional[User]:
    stmt = select(User).where(User.tenant_id == tenant_id, User.email == User.normalize_email(email))
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_users_by_email(db: AsyncSession, email: str) -> list[User]:
    stmt = select(User).where(User.email == User.normalize_email(email))
    return list((await db.execute(stmt)).scalars().all())


async def find_user_by_reset_digest(db: AsyncSession, digest: str) -> Optional[User]:
    stmt = select(User).where(User.password_reset_token_hash == digest)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_users(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    store_id: Optional[uuid.UUID] = None,
) -> list[User]:
    stmt = select(User).where(User.tenant_id == tenant_id)
    if store_id is not None:
        stmt = stmt.where(User.store_id == store_id)
    stmt = stmt.order_by(User.created_at, User.email)
    return list((await db.execute(stmt)).scalars().all())


async def count_users(db: AsyncSession, tenant_id: uuid.UUID) -> int:
    stmt = select(func.count(User.id)).where(User.tenant_id == tenant_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def _check_store_assignment(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    role: Role,
    store_id: Optional[uuid.UUID],
) -> None:
    if store_id is None:
        return
    if role in TENANT_WIDE_ROLES:
        raise InvalidInput(f"{role.value} cannot be scoped to a store", code="invalid_store_scope")
    if await get_store(db, tenant_id, store_id) is None:
        # Also covers a store id belonging to another tenant
        raise InvalidInput("Store not found in this company", code="invalid_store")


async def create_user(
    db: AsyncSession,
    tenant: Tenant,
    email: str,
    raw_password: str,
    role: Role,
    store_id: Optional[uuid.UUID] = None,
    full_name: Optional[str] = None,
    enforce_plan_limit: bool = True,
) -> User:
    """
    Adds a user to the session (flushed, not committed).

    Raises InvalidInput (email, password, store), Conflict (email taken in
    this tenant), Forbidden (plan user limit).
    """
    role = Role(role)
    clean_email = normalize_email(email)
    validate_password_policy(raw_password)
    await _check_store_assignment(db, tenant.id, role, store_id)

    if await find_user_by_email(db, tenant.id, clean_email) is not None:
        raise Conflict("A user with this email already exists in this company", code="email_exists")

    if enforce_plan_limit:
        limit = get_limits_for_plan(tenant.plan).max_users
        current = await count_users(db, tenant.id)
        if current >= limit:
            raise _plan_limit_error(tenant, "users", limit, current)

    user = User(
        tenant_id=tenant.id,
        store_id=store_id,
        email=clean_email,
        password_hash=await _hash_off_loop(raw_password),
        role=role.value,
        status=UserStatus.ACTIVE.value,
        token_version=0,
        full_name=collapse_whitespace(full_name),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Concurrent insert won the (tenant_id, email) constraint
        await db.rollback()
        raise Conflict("A user with this email already exists in this company", code="email_exists")
    return user


def verify_password(user: Optional[User], raw_password: str) -> bool:
    if user is None:
        return False
    return check_password(user.password_hash, raw_password)


# ---------------------------------------------------------
# Administrative mutations (each invalidates outstanding tokens)
# ---------------------------------------------------------
def increment_token_version(user: User) -> int:
    user.token_version = int(user.token_version or 0) + 1
    return user.token_version


async def set_role(
    db: AsyncSession,
    user: User,
    role: Role,
    store_id: Optional[uuid.UUID] = None,
) -> User:
    role = Role(role)
    await _check_store_assignment(db, user.tenant_id, role, store_id)
    user.role = role.value
    user.store_id = store_id
    increment_token_version(user)
    await db.flush()
    logger.info("user_role_changed", target_user_id=str(user.id), role=role.value)
    return user


async def disable_user(db: AsyncSession, user: User) -> User:
    user.status = UserStatus.DISABLED.value
    increment_token_version(user)
    await db.flush()
    logger.info("user_disabled", target_user_id=str(user.id))
    return user


async def enable_user(db: AsyncSession, user: User) -> User:
    user.status = UserStatus.ACTIVE.value
    await db.flush()
    logger.info("user_enabled", target_user_id=str(user.id))
    return user


async def set_password(db: AsyncSession, user: User, raw_password: str) -> User:
    validate_password_policy(raw_password)
    user.password_hash = await _hash_off_loop(raw_password)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    increment_token_version(user)
    await db.flush()
    return user


async def revoke_tokens(db: AsyncSession, user: User) -> int:
    version = increment_token_version(user)
    await db.flush()
    return version
