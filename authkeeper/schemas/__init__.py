"""Pydantic schemas for API validation"""

from authkeeper.schemas.auth import (
    SignInRequest,
    RefreshTokenRequest,
    ChangePasswordRequest,
    TokenResponse,
    PrincipalResponse,
    SessionResponse,
    LogoutResponse,
    PublicKeyResponse,
)
from authkeeper.schemas.response import ErrorResponse, HealthResponse
from authkeeper.schemas.audit import AuditEventResponse

__all__ = [
    "SignInRequest", "RefreshTokenRequest", "ChangePasswordRequest", "TokenResponse",
    "PrincipalResponse", "SessionResponse", "LogoutResponse", "PublicKeyResponse",
    "AuditEventResponse",
    "ErrorResponse", "HealthResponse"
]
