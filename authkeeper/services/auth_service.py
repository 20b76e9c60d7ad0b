"""Sign-in, refresh and logout use cases built on the token-lifecycle components."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from authkeeper.core.exceptions import InvalidCredentialError, InvalidLoginError, SessionNotFoundError
from authkeeper.core.metrics import TOKENS_ISSUED
from authkeeper.models.session import UserSession
from authkeeper.models.user import UserAccount
from authkeeper.services import audit_service as audit
from authkeeper.services.access_tokens import (
    AccessTokenClaims,
    AccessTokenIssuer,
    IssuedAccessToken,
    Principal,
)
from authkeeper.services.audit_service import AuditService
from authkeeper.services.refresh_tokens import RefreshTokenLedger
from authkeeper.services.revocation import RevocationRegistry
from authkeeper.services.session_manager import SessionManager
from authkeeper.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    session_id: uuid.UUID
    user_id: uuid.UUID
    token_type: str = "bearer"


class AuthService:
    """
    Thin orchestration over the issuer, ledger, registry and session manager.

    Refresh and access-token failures leave this layer as a single
    InvalidCredentialError; the internal reason is only logged.
    """

    def __init__(
        self,
        issuer: AccessTokenIssuer,
        ledger: RefreshTokenLedger,
        registry: RevocationRegistry,
        sessions: SessionManager,
        users: UserService = user_service,
        audit_log: AuditService = audit.audit_service,
    ):
        self.issuer = issuer
        self.ledger = ledger
        self.registry = registry
        self.sessions = sessions
        self.users = users
        self._audit = audit_log

    def _mint_access(self, db: Session, user: UserAccount, session_id: uuid.UUID) -> IssuedAccessToken:
        principal = Principal(
            user_id=user.id,
            tenant_id=user.tenant_id,
            username=user.username,
            session_id=session_id,
        )
        issued = self.issuer.issue(principal)
        self.registry.record_issued(db, issued, user.id, user.tenant_id)
        TOKENS_ISSUED.labels("access").inc()
        return issued

    def sign_in(
        self,
        db: Session,
        username: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        """
        Authenticate, open a session and issue the first token pair.

        Every attempt lands in the audit trail with the client's address and
        user agent, including the ones that fail.

        Raises:
            InvalidLoginError: Unknown user, inactive user or wrong password
        """
        client = {"username": username, "ip_address": ip_address, "user_agent": user_agent}
        try:
            user = self.users.authenticate_user(db, username, password)
        except InvalidLoginError:
            known = self.users.get_user_by_username(db, username)
            self._audit.log_event(
                db,
                action=audit.LOGIN_FAILED,
                user_id=known.id if known else None,
                tenant_id=known.tenant_id if known else None,
                resource_type="user",
                resource_id=username[:128],
                payload=client,
            )
            raise

        session = self.sessions.create(db, user.id, user.tenant_id, ip_address, user_agent)
        session_id = session.id
        self._audit.log_event(
            db,
            action=audit.LOGIN_SUCCEEDED,
            user_id=user.id,
            tenant_id=user.tenant_id,
            resource_type="session",
            resource_id=session_id,
            payload=client,
        )

        access = self._mint_access(db, user, session_id)
        refresh = self.ledger.issue(db, user.id, session_id)

        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.raw_token,
            expires_in=self.issuer.expires_in_seconds,
            session_id=session_id,
            user_id=user.id,
        )

    def refresh(self, db: Session, raw_token: str) -> TokenPair:
        """
        Rotate a refresh token and mint a new access token.

        Raises:
            InvalidCredentialError: For unknown, revoked, replayed or expired tokens
        """
        result = self.ledger.rotate(db, raw_token)
        if not result.ok:
            raise InvalidCredentialError(reason=result.error.value)

        successor = result.value
        user_id = successor.record.user_id
        session_id = successor.record.session_id

        user = self.users.get_user_by_id(db, user_id)
        if user is None or not user.is_active:
            self.ledger.revoke(db, successor.record.id)
            logger.warning("Refresh for missing or inactive user %s denied", user_id)
            raise InvalidCredentialError(reason="inactive_user")

        self.sessions.touch(db, session_id)
        access = self._mint_access(db, user, session_id)

        return TokenPair(
            access_token=access.token,
            refresh_token=successor.raw_token,
            expires_in=self.issuer.expires_in_seconds,
            session_id=session_id,
            user_id=user_id,
        )

    def authenticate(self, db: Session, token: str) -> AccessTokenClaims:
        """
        Gate for authenticated requests: signature first, then the denylist.

        Raises:
            InvalidCredentialError: Bad signature, expired, or revoked jti
            StoreUnavailableError: Denylist lookup failed (request is denied)
        """
        claims = self.issuer.decode(token)
        if claims is None:
            raise InvalidCredentialError(reason="invalid_access_token")
        if self.registry.is_revoked(db, claims.jti):
            logger.warning("Revoked access token presented by user %s", claims.user_id)
            raise InvalidCredentialError(reason="revoked_jti")
        return claims

    def logout(self, db: Session, claims: AccessTokenClaims) -> None:
        """Deny the presented access token and end its session, refresh tokens included."""
        self.registry.revoke(db, claims.jti, claims.user_id, claims.expires_at)
        if claims.session_id is not None:
            self.ledger.revoke_for_session(db, claims.session_id)
            try:
                self.sessions.deactivate(db, claims.session_id)
            except SessionNotFoundError:
                logger.warning("Logout referenced unknown session %s", claims.session_id)
        self._audit.log_event(
            db,
            action=audit.LOGOUT,
            user_id=claims.user_id,
            tenant_id=claims.tenant_id,
            resource_type="session",
            resource_id=claims.session_id,
        )

    def end_session(self, db: Session, user_id: uuid.UUID, session_id: uuid.UUID) -> UserSession:
        """End one of the caller's own sessions."""
        session = self.sessions.get(db, session_id)
        if session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        self.ledger.revoke_for_session(db, session_id)
        return self.sessions.deactivate(db, session_id)

    def logout_everywhere(self, db: Session, user_id: uuid.UUID) -> int:
        """
        Revoke all refresh tokens, all known access tokens and all sessions of a user.

        Returns:
            int: Number of refresh tokens revoked
        """
        revoked_refresh = self.ledger.revoke_all(db, user_id)
        revoked_access = self.registry.revoke_all_for_user(db, user_id)
        for session in self.sessions.list_active(db, user_id):
            self.sessions.deactivate(db, session.id)
        self._audit.log_event(
            db,
            action=audit.LOGOUT_ALL,
            user_id=user_id,
            resource_type="user",
            resource_id=user_id,
            payload={"refresh_tokens": revoked_refresh, "access_tokens": revoked_access},
        )
        return revoked_refresh

    def change_password(
        self,
        db: Session,
        claims: AccessTokenClaims,
        old_password: str,
        new_password: str,
    ) -> None:
        user = self.users.get_user_by_id(db, claims.user_id)
        if user is None or not user.is_active:
            raise InvalidCredentialError(reason="inactive_user")
        self.users.change_password(db, user, old_password, new_password)
        self._audit.log_event(
            db,
            action=audit.PASSWORD_CHANGED,
            user_id=user.id,
            tenant_id=user.tenant_id,
            actor_user_id=user.id,
            resource_type="user",
            resource_id=user.id,
        )
        self.logout_everywhere(db, user.id)
