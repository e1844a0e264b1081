# backend/app/core/errors.py

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """
    Base class for domain errors mapped to HTTP responses by app.main.

    The credential store and token service raise the precise subclasses;
    the authentication flow and the request guard decide what the caller sees.
    """

    status_code: int = 400
    code: str = "invalid_input"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail or {}

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.detail}


class InvalidInput(AppError):
    status_code = 400
    code = "invalid_input"


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"


class TokenError(Unauthorized):
    code = "invalid_token"


class TokenExpired(TokenError):
    code = "token_expired"


class TokenMalformed(TokenError):
    code = "token_malformed"


class TokenSignatureInvalid(TokenError):
    code = "token_signature_invalid"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"


class NotFound(AppError):
    status_code = 404
    code = "not_found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
