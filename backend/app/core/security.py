from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError
from fastapi.security import HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from app.core.config import settings
from app.core.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid
from app.core.roles import Role

# auto_error=False: a missing header must be a 401 from the guard, not FastAPI's default
bearer_scheme = HTTPBearer(auto_error=False)

_pwd_hasher = PasswordHasher()
_dummy_hash: Optional[str] = None

# clock skew tolerated on the issue time
IAT_LEEWAY = timedelta(seconds=60)


# ---------------------------------------------------------
# Passwords
# ---------------------------------------------------------
def hash_password(raw_password: str) -> str:
    """argon2id, salted per hash."""
    return _pwd_hasher.hash(raw_password)


def check_password(password_hash: Optional[str], raw_password: str) -> bool:
    if not password_hash or raw_password is None:
        return False
    try:
        return _pwd_hasher.verify(password_hash, raw_password)
    except (VerificationError, InvalidHash):
        return False


def burn_password_check(raw_password: str) -> None:
    """
    Spend the same time as a real verification when there is no user to check.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = _pwd_hasher.hash(secrets.token_urlsafe(16))
    check_password(_dummy_hash, raw_password or "")


def generate_reset_token() -> tuple[str, str]:
    """Returns (raw token for the user, sha256 digest for storage)."""
    raw = secrets.token_urlsafe(32)
    return raw, digest_reset_token(raw)


def digest_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ---------------------------------------------------------
# Access tokens
# ---------------------------------------------------------
@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    store_id: Optional[uuid.UUID]
    role: Role
    token_version: int
    issued_at: datetime
    expires_at: datetime


def _normalize_token(token: str) -> str:
    """
    Make token decoding resilient to common Swagger / copy-paste issues:
    - Leading/trailing whitespace/newlines
    - Surrounding quotes
    - Accidentally including the 'Bearer ' prefix in the token field
    """
    if token is None:
        return ""

    t = token.strip()

    # remove surrounding quotes if present
    if len(t) >= 2 and ((t.startswith('"') and t.endswith('"')) or (t.startswith("'") and t.endswith("'"))):
        t = t[1:-1].strip()

    # remove accidental bearer prefix
    if t.lower().startswith("bearer "):
        t = t[7:].strip()

    return t


def create_access_token(user: Any, expires_minutes: Optional[int] = None) -> tuple[str, datetime]:
    """
    Sign a token for `user` (anything with id, tenant_id, store_id, role, token_version).
    Returns (token, expires_at).
    """
    minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    issued_at = datetime.now(timezone.utc).replace(microsecond=0)
    expire_dt = issued_at + timedelta(minutes=minutes)

    role = user.role.value if isinstance(user.role, Role) else str(user.role)

    # Use numeric timestamps for maximum compatibility
    to_encode: dict[str, Any] = {
        "sub": str(user.id),
        "tid": str(user.tenant_id),
        "sid": str(user.store_id) if user.store_id else None,
        "role": role,
        "ver": int(user.token_version or 0),
        "iat": int(issued_at.timestamp()),
        "exp": int(expire_dt.timestamp()),
    }

    token = jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return token, expire_dt


def _parse_uuid(value: Any, name: str) -> uuid.UUID:
    if not isinstance(value, str):
        raise TokenMalformed(f"Token claim {name!r} is missing")
    try:
        return uuid.UUID(value)
    except ValueError:
        raise TokenMalformed(f"Token claim {name!r} is not a valid id")


def _parse_int(value: Any, name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise TokenMalformed(f"Token claim {name!r} must be an integer")
    return value


def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
    user_id = _parse_uuid(payload.get("sub"), "sub")
    tenant_id = _parse_uuid(payload.get("tid"), "tid")

    raw_sid = payload.get("sid")
    store_id = None if raw_sid is None else _parse_uuid(raw_sid, "sid")

    raw_role = payload.get("role")
    try:
        role = Role(raw_role)
    except ValueError:
        raise TokenMalformed("Token claim 'role' is not a known role")

    version = _parse_int(payload.get("ver"), "ver")
    if version < 0:
        raise TokenMalformed("Token claim 'ver' must not be negative")

    iat = _parse_int(payload.get("iat"), "iat")
    exp = _parse_int(payload.get("exp"), "exp")

    return TokenClaims(
        user_id=user_id,
        tenant_id=tenant_id,
        store_id=store_id,
        role=role,
        token_version=version,
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )


def decode_access_token(token: str) -> TokenClaims:
    """
    Verify signature and expiry, then check the claim shape.

    Raises TokenMalformed, TokenSignatureInvalid or TokenExpired.
    """
    token = _normalize_token(token)
    if not token:
        raise TokenMalformed("Token is empty")

    # Structure first, so garbage is never reported as a signature problem
    try:
        jwt.get_unverified_header(token)
        jwt.get_unverified_claims(token)
    except JWTError:
        raise TokenMalformed("Token is not a valid JWT")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True, "require_iat": True},
        )
    except ExpiredSignatureError:
        raise TokenExpired("Token has expired")
    except JWTClaimsError:
        raise TokenMalformed("Token claims are invalid")
    except JWTError:
        # bad signature, wrong algorithm
        raise TokenSignatureInvalid("Token signature is invalid")

    if not isinstance(payload, dict):
        raise TokenMalformed("Token payload must be an object")

    claims = _claims_from_payload(payload)

    now = datetime.now(timezone.utc)
    if claims.issued_at > now + IAT_LEEWAY:
        raise TokenMalformed("Token claim 'iat' is in the future")

    # jose already enforces exp; keep the invariant explicit for exp == now
    if claims.expires_at <= now:
        raise TokenExpired("Token has expired")

    return claims
