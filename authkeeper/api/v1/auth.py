"""Authentication routes"""

import ipaddress
import logging

from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from authkeeper.config import settings
from authkeeper.core.database import get_db
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
from authkeeper.schemas.audit import AuditEventResponse
from authkeeper.schemas.response import ErrorResponse
from authkeeper.services.access_tokens import AccessTokenClaims
from authkeeper.services.audit_service import audit_service
from authkeeper.services.auth_service import AuthService, TokenPair
from authkeeper.services.container import AuthServices
from authkeeper.api.deps import get_auth_service, get_current_claims, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _client_ip(request: Request) -> str:
    """
    Address recorded on the session.

    X-Forwarded-For is only believed when the direct peer is a configured
    trusted proxy and its first hop is a well-formed address.
    """
    direct_ip = request.client.host if request.client else None

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        if direct_ip and direct_ip in settings.TRUSTED_PROXY_IPS:
            client_ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning("Invalid IP in X-Forwarded-For header: %r", client_ip[:64])
        else:
            logger.debug("Ignoring X-Forwarded-For from untrusted peer: %s", direct_ip)

    return (direct_ip or "unknown")[:64]


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        session_id=pair.session_id,
        user_id=pair.user_id,
    )


@router.post("/signin", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def sign_in(
    credentials: SignInRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Sign-in endpoint - authenticate user, open a session and issue tokens

    Args:
        credentials: Username and password

    Returns:
        Access token, refresh token and session id
    """
    pair = auth.sign_in(
        db,
        credentials.username,
        credentials.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return _token_response(pair)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    req: RefreshTokenRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new token pair

    The presented refresh token is revoked; presenting it again fails.
    """
    pair = auth.refresh(db, req.refresh_token)
    return _token_response(pair)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke the current access token and end its session"""
    auth.logout(db, claims)
    return LogoutResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutResponse)
def logout_all(
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Log out of every session

    Access tokens not seen by this service stay valid until they expire.
    """
    revoked = auth.logout_everywhere(db, claims.user_id)
    return LogoutResponse(message="Logged out of all sessions", refresh_tokens_revoked=revoked)


@router.post("/change-password", response_model=LogoutResponse)
def change_password(
    body: ChangePasswordRequest,
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Change password and log out everywhere"""
    auth.change_password(db, claims, body.old_password, body.new_password)
    return LogoutResponse(message="Password changed; all sessions have been logged out")


@router.get("/me", response_model=PrincipalResponse)
def get_current_principal(claims: AccessTokenClaims = Depends(get_current_claims)):
    """Identity of the presented access token"""
    return PrincipalResponse.model_validate(claims)


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Active sessions of the caller"""
    return [SessionResponse.model_validate(s) for s in auth.sessions.list_active(db, claims.user_id)]


@router.delete("/sessions/{session_id}", response_model=SessionResponse)
def end_session(
    session_id: UUID,
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """End one of the caller's sessions and revoke its refresh tokens"""
    session = auth.end_session(db, claims.user_id, session_id)
    return SessionResponse.model_validate(session)


@router.get("/audit", response_model=List[AuditEventResponse])
def list_audit_events(
    claims: AccessTokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Issuance and revocation trail of the caller"""
    return [
        AuditEventResponse(
            id=event.id,
            user_id=event.user_id,
            tenant_id=event.tenant_id,
            actor_user_id=event.actor_user_id,
            action=event.action,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            payload=audit_service.decode_payload(event),
            created_at=event.created_at,
        )
        for event in auth.registry.audit_trail(db, claims.user_id)
    ]


@router.get("/public-key", response_model=PublicKeyResponse)
def public_key(services: AuthServices = Depends(get_services)):
    """Public half of the signing key for token verification elsewhere"""
    return PublicKeyResponse(
        kid=services.key_pair.kid,
        algorithm=services.issuer.algorithm,
        public_key_pem=services.key_pair.public_pem,
    )
