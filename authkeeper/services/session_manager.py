"""Login session bookkeeping."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from authkeeper.core.database import utcnow
from authkeeper.core.exceptions import SessionNotFoundError
from authkeeper.models.session import UserSession
from authkeeper.services import audit_service as audit
from authkeeper.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Track one session per device/browser login.

    Deactivating a session does not revoke its refresh tokens. Full logout
    must also call RefreshTokenLedger.revoke_for_session.
    """

    def __init__(self, audit_log: AuditService = audit.audit_service):
        self._audit = audit_log

    def create(
        self,
        db: Session,
        user_id: uuid.UUID,
        tenant_id: Optional[uuid.UUID],
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> UserSession:
        now = utcnow()
        session = UserSession(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            user_id=user_id,
            ip_address=(ip_address or "")[:64] or None,
            user_agent=(user_agent or "")[:500] or None,
            created_at=now,
            last_active_at=now,
            is_active=True,
            deleted_at=None,
        )
        db.add(session)
        self._audit.log_event(
            db,
            action=audit.SESSION_CREATED,
            user_id=user_id,
            tenant_id=tenant_id,
            resource_type="session",
            resource_id=session.id,
            payload={"ip_address": ip_address},
            commit=False,
        )
        db.commit()
        db.refresh(session)
        logger.info("Created session %s for user %s from %s", session.id, user_id, ip_address)
        return session

    def get(self, db: Session, session_id: uuid.UUID) -> UserSession:
        session = db.get(UserSession, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def touch(self, db: Session, session_id: uuid.UUID) -> None:
        """Record activity on a session (called on refresh)."""
        (
            db.query(UserSession)
            .filter(UserSession.id == session_id)
            .update({UserSession.last_active_at: utcnow()}, synchronize_session=False)
        )
        db.commit()

    def deactivate(self, db: Session, session_id: uuid.UUID) -> UserSession:
        """
        Soft-deactivate a session. Repeat calls are no-ops.

        Raises:
            SessionNotFoundError: If no such session exists
        """
        session = self.get(db, session_id)
        if not session.is_active:
            return session

        session.is_active = False
        session.deleted_at = utcnow()
        self._audit.log_event(
            db,
            action=audit.SESSION_DEACTIVATED,
            user_id=session.user_id,
            tenant_id=session.tenant_id,
            resource_type="session",
            resource_id=session.id,
            commit=False,
        )
        db.commit()
        db.refresh(session)
        logger.info("Deactivated session %s for user %s", session.id, session.user_id)
        return session

    def list_active(self, db: Session, user_id: uuid.UUID) -> List[UserSession]:
        return (
            db.query(UserSession)
            .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .order_by(UserSession.created_at.desc())
            .all()
        )

    def list_for_tenant(self, db: Session, tenant_id: uuid.UUID) -> List[UserSession]:
        return (
            db.query(UserSession)
            .filter(UserSession.tenant_id == tenant_id)
            .order_by(UserSession.created_at.desc())
            .all()
        )
