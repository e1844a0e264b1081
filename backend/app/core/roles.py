# app/core/roles.py

import enum


class Role(str, enum.Enum):
    OWNER = "OWNER"        # company creator, tenant-wide authority
    MANAGER = "MANAGER"    # runs a store (or the whole tenant if unscoped)
    CASHIER = "CASHIER"    # point of sale, store-scoped in practice


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


# Roles that may never be pinned to a single store
TENANT_WIDE_ROLES = frozenset({Role.OWNER})


def parse_role(value) -> Role:
    """
    Strict conversion at the authorization boundary. Raises ValueError.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid role: {value!r}")
    return Role(value.strip().upper())
