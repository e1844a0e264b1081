from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.errors import Forbidden
from app.core.roles import Role


@dataclass(frozen=True)
class Principal:
    """
    Identity resolved from a verified token for one request.

    Tenant and store scoping for downstream queries comes from here, never
    from client-supplied ids.
    """

    user_id: uuid.UUID
    tenant_id: uuid.UUID
    store_id: Optional[uuid.UUID]
    role: Role
    token_version: int
    user: Any = field(default=None, compare=False, repr=False)

    @property
    def is_store_scoped(self) -> bool:
        return self.store_id is not None

    def ensure_store_scope(self, store_id: Optional[uuid.UUID]) -> None:
        """
        Store-scoped principals may only act inside their own store.
        """
        if self.store_id is None:
            return
        if store_id != self.store_id:
            raise Forbidden("Access to this store is not allowed", code="store_scope_forbidden")
