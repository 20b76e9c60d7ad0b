"""Explicit wiring of the token-lifecycle components."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from authkeeper.config import Settings, settings as default_settings
from authkeeper.core.security import SigningKeyPair
from authkeeper.services.access_tokens import AccessTokenIssuer
from authkeeper.services.auth_service import AuthService
from authkeeper.services.refresh_tokens import RefreshTokenLedger
from authkeeper.services.revocation import RevocationRegistry
from authkeeper.services.session_manager import SessionManager


@dataclass(frozen=True)
class AuthServices:
    key_pair: SigningKeyPair
    issuer: AccessTokenIssuer
    ledger: RefreshTokenLedger
    registry: RevocationRegistry
    sessions: SessionManager
    auth: AuthService


def build_services(key_pair: SigningKeyPair, settings: Optional[Settings] = None) -> AuthServices:
    """Compose every component around one provisioned key pair."""
    settings = settings or default_settings
    issuer = AccessTokenIssuer(
        key_pair,
        algorithm=settings.JWT_ALGORITHM,
        issuer=settings.JWT_ISSUER,
        expires_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )
    ledger = RefreshTokenLedger(
        expire_days=settings.REFRESH_TOKEN_EXPIRE_DAYS,
        hash_key=settings.REFRESH_TOKEN_HASH_KEY,
        token_bytes=settings.REFRESH_TOKEN_BYTES,
    )
    registry = RevocationRegistry(
        access_lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    sessions = SessionManager()
    auth = AuthService(issuer=issuer, ledger=ledger, registry=registry, sessions=sessions)
    return AuthServices(
        key_pair=key_pair,
        issuer=issuer,
        ledger=ledger,
        registry=registry,
        sessions=sessions,
        auth=auth,
    )
