"""Login session model"""

import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from authkeeper.core.database import Base, utcnow


class UserSession(Base):
    """One login per device/browser. Grouping and audit only, not a credential."""

    __tablename__ = "user_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=True)
    user_id = Column(Uuid, ForeignKey("user_accounts.id", ondelete="CASCADE"), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_active_at = Column(DateTime, default=utcnow, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    refresh_tokens = relationship("RefreshToken", back_populates="session")

    __table_args__ = (
        Index("idx_user_sessions_user", "user_id"),
        Index("idx_user_sessions_tenant", "tenant_id"),
    )

    def __repr__(self):
        return f"<UserSession(id={self.id}, user_id={self.user_id}, active={self.is_active})>"
