# backend/app/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.principal import get_current_principal, get_permission_engine
from app.auth.context import Principal
from app.auth.permissions import PermissionEngine
from app.core import authentication
from app.core.config import settings
from app.crud import credentials
from app.db.session import get_db
from app.models.tenant import Tenant
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
    ResetPasswordRequest,
    StatusResponse,
    TenantOut,
    UserOut,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _to_auth_response(result: authentication.AuthResult, engine: PermissionEngine) -> AuthResponse:
    return AuthResponse(
        token=result.token,
        expires_at=result.expires_at,
        user=UserOut.model_validate(result.user),
        tenant=TenantOut.model_validate(result.tenant),
        accessible_pages=engine.accessible_resources(result.user.role),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> AuthResponse:
    """
    Body: {"email", "password", "companyName"}
    Creates the company and its OWNER, and signs them in.
    """
    result = await authentication.register(
        db,
        email=str(payload.email),
        password=payload.password,
        company_name=payload.company_name,
        full_name=payload.full_name,
        plan=payload.plan,
    )
    return _to_auth_response(result, engine)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> AuthResponse:
    """
    Body: {"email", "password", "company"?}
    """
    result = await authentication.login(
        db,
        email=payload.email,
        password=payload.password,
        tenant_hint=payload.company,
    )
    return _to_auth_response(result, engine)


@router.post("/logout", response_model=StatusResponse)
async def logout(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    """
    Revokes every token issued to the caller, not just this one.
    """
    await authentication.logout(db, principal.user)
    return StatusResponse()


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> MeResponse:
    tenant: Tenant = await credentials.get_tenant(db, principal.tenant_id)
    user: User = principal.user
    return MeResponse(
        user=UserOut.model_validate(user),
        tenant=TenantOut.model_validate(tenant),
        accessible_pages=engine.accessible_resources(principal.role),
    )


@router.post("/change-password", response_model=AuthResponse)
async def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    engine: PermissionEngine = Depends(get_permission_engine),
) -> AuthResponse:
    """
    Old tokens stop working; the response carries a fresh one.
    """
    result = await authentication.change_password(
        db,
        principal.user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return _to_auth_response(result, engine)


@router.post("/forgot-password", response_model=ForgotPasswordResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> ForgotPasswordResponse:
    raw = await authentication.request_password_reset(
        db,
        email=payload.email,
        tenant_hint=payload.company,
    )
    resp = ForgotPasswordResponse(expires_in_minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    if raw and settings.return_reset_token_in_response:
        resp.reset_token = raw
    return resp


@router.post("/reset-password", response_model=StatusResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    await authentication.reset_password(db, token=payload.token, new_password=payload.password)
    return StatusResponse()
