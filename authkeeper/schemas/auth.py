"""Authentication schemas"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from uuid import UUID


class SignInRequest(BaseModel):
    """Sign-in schema"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    """Refresh token exchange schema"""
    refresh_token: str = Field(..., min_length=1, max_length=512)


class ChangePasswordRequest(BaseModel):
    """Password change schema"""
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    """Access + refresh token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: UUID
    user_id: UUID


class PrincipalResponse(BaseModel):
    """Identity carried by the presented access token"""
    user_id: UUID
    tenant_id: Optional[UUID]
    username: Optional[str]
    session_id: Optional[UUID]
    jti: UUID
    issued_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Login session"""
    id: UUID
    tenant_id: Optional[UUID]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    last_active_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class LogoutResponse(BaseModel):
    success: bool = True
    message: str
    refresh_tokens_revoked: Optional[int] = None


class PublicKeyResponse(BaseModel):
    """Verification key for other services"""
    kid: str
    algorithm: str
    public_key_pem: str
