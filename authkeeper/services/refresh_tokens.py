"""Refresh token issuance, rotation and revocation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from authkeeper.config import settings
from authkeeper.core.database import utcnow
from authkeeper.core.metrics import REFRESH_REJECTIONS, REVOCATIONS, TOKENS_ISSUED
from authkeeper.core.results import TokenErrorKind, TokenResult
from authkeeper.core.security import generate_refresh_token, hash_refresh_token
from authkeeper.models.token import RefreshToken
from authkeeper.services import audit_service as audit
from authkeeper.services.audit_service import AuditService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A stored refresh token plus the raw value; the raw value exists only here."""

    raw_token: str
    record: RefreshToken


class RefreshTokenLedger:
    """
    Manage refresh-token lifecycle.

    Each token is usable for rotation exactly once. Rotation revokes the
    presented token with a conditional update before the successor is
    inserted, so a crash in between leaves no live token and two concurrent
    rotations of the same token produce a single winner.
    """

    def __init__(
        self,
        expire_days: Optional[int] = None,
        hash_key: Optional[str] = None,
        token_bytes: Optional[int] = None,
        audit_log: AuditService = audit.audit_service,
    ):
        self._lifetime = timedelta(days=expire_days or settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self._hash_key = hash_key or settings.REFRESH_TOKEN_HASH_KEY
        self._token_bytes = token_bytes or settings.REFRESH_TOKEN_BYTES
        self._audit = audit_log

    def digest(self, raw_token: str) -> str:
        return hash_refresh_token(raw_token, key=self._hash_key)

    def _create_record(
        self,
        db: Session,
        *,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        now: datetime,
    ) -> IssuedRefreshToken:
        raw_token = generate_refresh_token(self._token_bytes)
        record = RefreshToken(
            id=uuid.uuid4(),
            user_id=user_id,
            session_id=session_id,
            token_hash=self.digest(raw_token),
            created_at=now,
            expires_at=now + self._lifetime,
            revoked_at=None,
        )
        db.add(record)
        db.flush()
        return IssuedRefreshToken(raw_token=raw_token, record=record)

    def issue(self, db: Session, user_id: uuid.UUID, session_id: uuid.UUID) -> IssuedRefreshToken:
        """Create and store a refresh token bound to a user and session."""
        issued = self._create_record(db, user_id=user_id, session_id=session_id, now=utcnow())
        self._audit.log_event(
            db,
            action=audit.REFRESH_ISSUED,
            user_id=user_id,
            resource_type="refresh_token",
            resource_id=issued.record.id,
            payload={"session_id": session_id, "expires_at": issued.record.expires_at.isoformat()},
            commit=False,
        )
        db.commit()
        TOKENS_ISSUED.labels("refresh").inc()
        logger.info("Issued refresh token %s for user %s session %s", issued.record.id, user_id, session_id)
        return issued

    def _reject(self, kind: TokenErrorKind, record: Optional[RefreshToken] = None) -> TokenResult:
        REFRESH_REJECTIONS.labels(kind.value).inc()
        if record is None:
            logger.warning("Refresh token rejected: %s", kind.value)
        else:
            logger.warning(
                "Refresh token %s rejected for user %s: %s", record.id, record.user_id, kind.value
            )
        return TokenResult.failure(kind)

    def validate(
        self,
        db: Session,
        raw_token: str,
        now: Optional[datetime] = None,
    ) -> TokenResult[RefreshToken]:
        """
        Look up a presented refresh token by digest.

        Returns:
            TokenResult: the stored record, or NOT_FOUND / REVOKED / EXPIRED
        """
        if not raw_token:
            return self._reject(TokenErrorKind.NOT_FOUND)

        record = (
            db.query(RefreshToken)
            .filter(RefreshToken.token_hash == self.digest(raw_token))
            .first()
        )
        if record is None:
            return self._reject(TokenErrorKind.NOT_FOUND)
        if record.revoked_at is not None:
            return self._reject(TokenErrorKind.REVOKED, record)
        if (now or utcnow()) > record.expires_at:
            return self._reject(TokenErrorKind.EXPIRED, record)
        return TokenResult.success(record)

    def rotate(self, db: Session, raw_token: str) -> TokenResult[IssuedRefreshToken]:
        """
        Revoke the presented token and issue its successor in one commit.

        Returns:
            TokenResult: the successor, or NOT_FOUND / REVOKED / EXPIRED.
            A replayed or concurrently rotated token yields REVOKED.
        """
        now = utcnow()
        validated = self.validate(db, raw_token, now=now)
        if not validated.ok:
            return TokenResult.failure(validated.error)

        current = validated.value
        current_id, user_id, session_id = current.id, current.user_id, current.session_id

        claimed = (
            db.query(RefreshToken)
            .filter(RefreshToken.id == current_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: now}, synchronize_session=False)
        )
        if claimed != 1:
            db.rollback()
            logger.warning("Refresh token %s lost a concurrent rotation", current_id)
            return self._reject(TokenErrorKind.REVOKED)

        successor = self._create_record(db, user_id=user_id, session_id=session_id, now=now)
        self._audit.log_event(
            db,
            action=audit.REFRESH_ROTATED,
            user_id=user_id,
            resource_type="refresh_token",
            resource_id=current_id,
            payload={"session_id": session_id, "successor_id": successor.record.id},
            commit=False,
        )
        db.commit()
        TOKENS_ISSUED.labels("refresh").inc()
        logger.info("Rotated refresh token %s -> %s for user %s", current_id, successor.record.id, user_id)
        return TokenResult.success(successor)

    def revoke(self, db: Session, token_id: uuid.UUID) -> bool:
        """
        Revoke one refresh token by id.

        Returns:
            bool: True if this call revoked it, False if unknown or already revoked
        """
        claimed = (
            db.query(RefreshToken)
            .filter(RefreshToken.id == token_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: utcnow()}, synchronize_session=False)
        )
        if claimed:
            self._audit.log_event(
                db,
                action=audit.REFRESH_REVOKED,
                resource_type="refresh_token",
                resource_id=token_id,
                commit=False,
            )
        db.commit()
        if claimed:
            REVOCATIONS.labels("refresh").inc()
        return bool(claimed)

    def revoke_all(self, db: Session, user_id: uuid.UUID) -> int:
        """Revoke every unrevoked refresh token of a user."""
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: utcnow()}, synchronize_session=False)
        )
        self._audit.log_event(
            db,
            action=audit.REFRESH_REVOKED,
            user_id=user_id,
            resource_type="user",
            resource_id=user_id,
            payload={"scope": "user", "count": count},
            commit=False,
        )
        db.commit()
        REVOCATIONS.labels("refresh").inc(count)
        logger.info("Revoked %d refresh tokens for user %s", count, user_id)
        return count

    def revoke_for_session(self, db: Session, session_id: uuid.UUID) -> int:
        """Revoke every unrevoked refresh token bound to a session."""
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.session_id == session_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: utcnow()}, synchronize_session=False)
        )
        self._audit.log_event(
            db,
            action=audit.REFRESH_REVOKED,
            resource_type="session",
            resource_id=session_id,
            payload={"scope": "session", "count": count},
            commit=False,
        )
        db.commit()
        REVOCATIONS.labels("refresh").inc(count)
        return count

    def list_for_user(
        self,
        db: Session,
        user_id: uuid.UUID,
        include_revoked: bool = False,
    ) -> List[RefreshToken]:
        query = db.query(RefreshToken).filter(RefreshToken.user_id == user_id)
        if not include_revoked:
            query = query.filter(RefreshToken.revoked_at.is_(None))
        return query.order_by(RefreshToken.created_at.desc()).all()

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        """Delete rows past expiry. Housekeeping only; validation never depends on it."""
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.expires_at < (now or utcnow()))
            .delete(synchronize_session=False)
        )
        db.commit()
        return count
