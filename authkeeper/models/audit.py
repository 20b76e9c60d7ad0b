"""Audit event model for issuance and revocation actions."""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index, Uuid

from authkeeper.core.database import Base, utcnow


class AuthAuditEvent(Base):
    """Immutable audit events."""

    __tablename__ = "auth_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Uuid, nullable=True)
    user_id = Column(Uuid, nullable=True)
    actor_user_id = Column(Uuid, nullable=True)
    action = Column(String(64), nullable=False, index=True)
    resource_type = Column(String(64), nullable=True)
    resource_id = Column(String(128), nullable=True, index=True)
    payload = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_auth_audit_user_action", "user_id", "action"),
        Index("idx_auth_audit_created_at", "created_at"),
    )
