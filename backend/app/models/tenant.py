# backend/app/models/tenant.py

import re
import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base, utcnow

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Tenant-name uniqueness lives here: "Co 1" and "co-1" collide on purpose
    slug: Mapped[str] = mapped_column(String(200), unique=True, index=True, nullable=False)

    # keep as string for now; values come from app.core.tier_limits.Plan
    plan: Mapped[str] = mapped_column(String(30), nullable=False, default="STARTER")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    @staticmethod
    def slugify(name: str) -> str:
        return _SLUG_STRIP_RE.sub("-", (name or "").strip().lower()).strip("-")
