# tests/test_security.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import jwt

from app.core.config import settings
from app.core.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid
from app.core.roles import Role
from app.core.security import (
    check_password,
    create_access_token,
    decode_access_token,
    digest_reset_token,
    generate_reset_token,
    hash_password,
)


def make_user(role: Role = Role.CASHIER, store_id=None, token_version: int = 0):
    return SimpleNamespace(
        id=uuid.uuid4(),
        tenant_id=uuid.uuid4(),
        store_id=store_id,
        role=role.value,
        token_version=token_version,
    )


def test_token_round_trip():
    store_id = uuid.uuid4()
    user = make_user(Role.CASHIER, store_id=store_id, token_version=3)

    token, expires_at = create_access_token(user)
    claims = decode_access_token(token)

    assert claims.user_id == user.id
    assert claims.tenant_id == user.tenant_id
    assert claims.store_id == store_id
    assert claims.role == Role.CASHIER
    assert claims.token_version == 3
    assert claims.expires_at == expires_at
    assert claims.issued_at < claims.expires_at


def test_tenant_wide_token_has_no_store():
    claims = decode_access_token(create_access_token(make_user(Role.OWNER))[0])
    assert claims.store_id is None
    assert claims.role == Role.OWNER


def test_decode_tolerates_bearer_prefix_and_quotes():
    user = make_user()
    token, _ = create_access_token(user)

    assert decode_access_token(f"Bearer {token}").user_id == user.id
    assert decode_access_token(f'  "{token}"\n').user_id == user.id


def test_expired_token():
    token, _ = create_access_token(make_user(), expires_minutes=-5)
    with pytest.raises(TokenExpired):
        decode_access_token(token)


def test_bad_signature():
    token, _ = create_access_token(make_user())
    header, payload, signature = token.split(".")
    tampered = f"{header}.{payload}.{signature[::-1]}"
    with pytest.raises(TokenSignatureInvalid):
        decode_access_token(tampered)


def test_token_signed_with_another_secret():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "sub": str(uuid.uuid4()),
            "tid": str(uuid.uuid4()),
            "sid": None,
            "role": "OWNER",
            "ver": 0,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        "some-other-secret-that-is-long-enough-000",
        algorithm="HS256",
    )
    with pytest.raises(TokenSignatureInvalid):
        decode_access_token(token)


@pytest.mark.parametrize("raw", ["", "   ", "not-a-jwt", "a.b.c", "Bearer "])
def test_malformed_token(raw):
    with pytest.raises(TokenMalformed):
        decode_access_token(raw)


@pytest.mark.parametrize(
    "overrides",
    [
        {"role": "SUPERADMIN"},
        {"tid": "not-a-uuid"},
        {"ver": "1"},
        {"ver": -1},
        {"tid": None},
    ],
)
def test_token_with_bad_claims_is_malformed(overrides):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(uuid.uuid4()),
        "tid": str(uuid.uuid4()),
        "sid": None,
        "role": "CASHIER",
        "ver": 0,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=5)).timestamp()),
    }
    payload.update(overrides)
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(TokenMalformed):
        decode_access_token(token)


def test_password_hashing():
    hashed = hash_password("Passw0rd!")

    assert hashed != "Passw0rd!"
    assert hashed.startswith("$argon2")
    assert check_password(hashed, "Passw0rd!") is True
    assert check_password(hashed, "passw0rd!") is False
    assert check_password(None, "Passw0rd!") is False
    assert check_password("not-a-hash", "Passw0rd!") is False


def test_same_password_hashes_differently():
    assert hash_password("Passw0rd!") != hash_password("Passw0rd!")


def test_reset_token_digest():
    raw, digest = generate_reset_token()
    assert raw != digest
    assert digest_reset_token(raw) == digest
    assert len(digest) == 64


def _signed(iat: datetime, exp: datetime) -> str:
    payload = {
        "sub": str(uuid.uuid4()),
        "tid": str(uuid.uuid4()),
        "sid": None,
        "role": "CASHIER",
        "ver": 0,
        "iat": int(iat.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def test_token_issued_in_the_future_is_rejected():
    now = datetime.now(timezone.utc)
    token = _signed(now + timedelta(hours=1), now + timedelta(hours=2))

    with pytest.raises(TokenMalformed):
        decode_access_token(token)


def test_small_clock_skew_on_iat_is_tolerated():
    now = datetime.now(timezone.utc)
    token = _signed(now + timedelta(seconds=30), now + timedelta(minutes=5))

    claims = decode_access_token(token)
    assert claims.issued_at > now
