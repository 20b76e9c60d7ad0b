"""Audit service for token issuance and revocation events."""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from authkeeper.models.audit import AuthAuditEvent

ACCESS_ISSUED = "access_issued"
REFRESH_ISSUED = "refresh_issued"
REFRESH_ROTATED = "refresh_rotated"
REFRESH_REVOKED = "refresh_revoked"
JTI_REVOKED = "jti_revoked"
SESSION_CREATED = "session_created"
SESSION_DEACTIVATED = "session_deactivated"
LOGOUT = "logout"
LOGOUT_ALL = "logout_all"
PASSWORD_CHANGED = "password_changed"
LOGIN_SUCCEEDED = "login_succeeded"
LOGIN_FAILED = "login_failed"


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        action: str,
        user_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        actor_user_id: Optional[uuid.UUID] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        payload: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> AuthAuditEvent:
        """
        Record an audit event.

        With commit=False the row joins the caller's transaction.
        """
        event = AuthAuditEvent(
            action=action,
            user_id=user_id,
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            payload=json.dumps(payload or {}, ensure_ascii=False, default=str),
        )
        db.add(event)
        if commit:
            db.commit()
            db.refresh(event)
        return event

    @staticmethod
    def events_for_user(
        db: Session,
        user_id: uuid.UUID,
        action: Optional[str] = None,
    ) -> List[AuthAuditEvent]:
        query = db.query(AuthAuditEvent).filter(AuthAuditEvent.user_id == user_id)
        if action:
            query = query.filter(AuthAuditEvent.action == action)
        return query.order_by(AuthAuditEvent.id.asc()).all()

    @staticmethod
    def decode_payload(event: AuthAuditEvent) -> Dict[str, Any]:
        if not event.payload:
            return {}
        try:
            return json.loads(event.payload)
        except json.JSONDecodeError:
            return {}


audit_service = AuditService()
