from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.roles import Role


class StoreCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=200)


class StoreOut(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class EmployeeCreate(BaseModel):
    # no tenant_id here on purpose: the tenant always comes from the token
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    role: Role = Role.CASHIER
    store_id: Optional[UUID] = Field(default=None, alias="storeId")
    full_name: Optional[str] = Field(default=None, max_length=200, alias="fullName")

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class RoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    role: Role
    # omitted: keep the current store; explicit null: tenant-wide
    store_id: Optional[UUID] = Field(default=None, alias="storeId")

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


class EmployeeOut(BaseModel):
    id: UUID
    store_id: Optional[UUID] = None
    email: EmailStr
    full_name: Optional[str] = None
    role: Role
    status: str
    last_login_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

