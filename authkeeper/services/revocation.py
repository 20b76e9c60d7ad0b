"""Denylist of revoked access-token identifiers (JTIs)."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from authkeeper.config import settings
from authkeeper.core.database import utcnow
from authkeeper.core.exceptions import StoreUnavailableError
from authkeeper.core.metrics import REGISTRY_LOOKUP_FAILURES, REVOCATIONS
from authkeeper.models.audit import AuthAuditEvent
from authkeeper.models.token import RevokedJti
from authkeeper.services import audit_service as audit
from authkeeper.services.access_tokens import IssuedAccessToken
from authkeeper.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class RevocationRegistry:
    """
    Record revoked JTIs and answer membership queries.

    Access tokens are not stored, so revoking "all" of a user's access tokens
    covers only the JTIs this registry has seen issued. Any other token stays
    valid until it expires: logout-everywhere lags by at most one access-token
    lifetime.
    """

    def __init__(
        self,
        audit_log: AuditService = audit.audit_service,
        access_lifetime: Optional[timedelta] = None,
    ):
        self._audit = audit_log
        self.access_lifetime = access_lifetime or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def is_revoked(self, db: Session, jti: uuid.UUID) -> bool:
        """
        Check whether a JTI is denylisted.

        Raises:
            StoreUnavailableError: If the lookup fails. Callers deny the request.
        """
        try:
            return db.query(RevokedJti.jti).filter(RevokedJti.jti == jti).first() is not None
        except SQLAlchemyError as exc:
            REGISTRY_LOOKUP_FAILURES.inc()
            logger.error("Revocation lookup failed for jti %s: %s", jti, exc)
            raise StoreUnavailableError() from exc

    def revoke(
        self,
        db: Session,
        jti: uuid.UUID,
        user_id: Optional[uuid.UUID],
        expires_at: datetime,
    ) -> bool:
        """
        Denylist a JTI. Idempotent.

        Returns:
            bool: True if a new row was written, False if it was already revoked

        Raises:
            IntegrityError: If the row is rejected for any reason other than
                an existing entry for the same jti
        """
        if db.get(RevokedJti, jti) is not None:
            return False

        db.add(RevokedJti(jti=jti, user_id=user_id, revoked_at=utcnow(), expires_at=expires_at))
        self._audit.log_event(
            db,
            action=audit.JTI_REVOKED,
            user_id=user_id,
            resource_type="jti",
            resource_id=jti,
            payload={"expires_at": expires_at.isoformat()},
            commit=False,
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Only a concurrent revoke of the same jti counts as done.
            if db.get(RevokedJti, jti) is not None:
                return False
            raise

        REVOCATIONS.labels("jti").inc()
        logger.info("Revoked jti %s for user %s", jti, user_id)
        return True

    def record_issued(
        self,
        db: Session,
        issued: IssuedAccessToken,
        user_id: uuid.UUID,
        tenant_id: Optional[uuid.UUID] = None,
        commit: bool = True,
    ) -> AuthAuditEvent:
        """Add an issued access token to the audit trail so it can be revoked later."""
        return self._audit.log_event(
            db,
            action=audit.ACCESS_ISSUED,
            user_id=user_id,
            tenant_id=tenant_id,
            resource_type="jti",
            resource_id=issued.jti,
            payload={"expires_at": issued.expires_at.isoformat()},
            commit=commit,
        )

    def outstanding_jtis(
        self, db: Session, user_id: uuid.UUID, now: Optional[datetime] = None
    ) -> List[Tuple[uuid.UUID, datetime]]:
        """
        Known, unexpired JTIs issued to a user, as (jti, expires_at) pairs.

        Only issuance events younger than one access-token lifetime are read.
        """
        now = now or utcnow()
        events = (
            db.query(AuthAuditEvent)
            .filter(
                AuthAuditEvent.user_id == user_id,
                AuthAuditEvent.action == audit.ACCESS_ISSUED,
                AuthAuditEvent.created_at >= now - self.access_lifetime,
            )
            .order_by(AuthAuditEvent.id.asc())
            .all()
        )
        outstanding = []
        for event in events:
            payload = self._audit.decode_payload(event)
            try:
                jti = uuid.UUID(event.resource_id)
                expires_at = datetime.fromisoformat(payload["expires_at"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed access_issued audit event %s", event.id)
                continue
            if expires_at > now:
                outstanding.append((jti, expires_at))
        return outstanding

    def revoke_all_for_user(self, db: Session, user_id: uuid.UUID) -> int:
        """
        Denylist every known outstanding JTI of a user in one transaction.

        Returns:
            int: Number of JTIs newly revoked
        """
        outstanding = dict(self.outstanding_jtis(db, user_id))
        if not outstanding:
            return 0

        already = {
            jti
            for (jti,) in db.query(RevokedJti.jti).filter(RevokedJti.jti.in_(list(outstanding)))
        }
        fresh = [(jti, expires_at) for jti, expires_at in outstanding.items() if jti not in already]
        if not fresh:
            return 0

        now = utcnow()
        for jti, expires_at in fresh:
            db.add(RevokedJti(jti=jti, user_id=user_id, revoked_at=now, expires_at=expires_at))
            self._audit.log_event(
                db,
                action=audit.JTI_REVOKED,
                user_id=user_id,
                resource_type="jti",
                resource_id=jti,
                payload={"expires_at": expires_at.isoformat()},
                commit=False,
            )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # Some jti was revoked concurrently; settle them one at a time.
            logger.info("Bulk revoke for user %s collided, retrying per jti", user_id)
            return sum(1 for jti, expires_at in fresh if self.revoke(db, jti, user_id, expires_at))

        REVOCATIONS.labels("jti").inc(len(fresh))
        logger.info("Revoked %d outstanding access tokens for user %s", len(fresh), user_id)
        return len(fresh)

    def audit_trail(self, db: Session, user_id: uuid.UUID) -> List[AuthAuditEvent]:
        return self._audit.events_for_user(db, user_id)

    def purge_expired(self, db: Session, now: Optional[datetime] = None) -> int:
        """Delete denylist rows whose token could no longer be valid anyway."""
        count = (
            db.query(RevokedJti)
            .filter(RevokedJti.expires_at < (now or utcnow()))
            .delete(synchronize_session=False)
        )
        db.commit()
        return count
