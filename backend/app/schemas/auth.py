# backend/app/schemas/auth.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.roles import Role
from app.core.text import collapse_whitespace


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    company_name: str = Field(min_length=2, max_length=200, alias="companyName")
    full_name: Optional[str] = Field(default=None, max_length=200, alias="fullName")
    plan: Optional[str] = Field(default=None, max_length=30)

    @field_validator("company_name")
    @classmethod
    def validate_company_name(cls, v: str) -> str:
        cleaned = collapse_whitespace(v)
        if not cleaned:
            raise ValueError("companyName is required")
        return cleaned

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: Optional[str]) -> Optional[str]:
        return collapse_whitespace(v)


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # plain str: a malformed email must fail like any other bad credential (401)
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=256)
    # tenant hint: company slug or name; required only if the email exists in several companies
    company: Optional[str] = Field(default=None, max_length=200)

    @field_validator("company")
    @classmethod
    def validate_company(cls, v: Optional[str]) -> Optional[str]:
        return collapse_whitespace(v)


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_password: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=320)
    company: Optional[str] = Field(default=None, max_length=200)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=8, max_length=256)
    password: str = Field(min_length=1, max_length=256)


class TenantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    plan: str
    is_active: bool


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    store_id: Optional[UUID] = None
    email: EmailStr
    full_name: Optional[str] = None
    role: Role
    status: str
    last_login_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut
    tenant: TenantOut
    accessible_pages: List[str]


class MeResponse(BaseModel):
    user: UserOut
    tenant: TenantOut
    accessible_pages: List[str]


class StatusResponse(BaseModel):
    status: str = "ok"


class ForgotPasswordResponse(BaseModel):
    status: str = "ok"
    message: str = "If the account exists, a reset link has been sent"
    expires_in_minutes: int
    # dev/staging convenience only; never set in production
    reset_token: Optional[str] = None
