"""Token-lifecycle persistence models."""

import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from authkeeper.core.database import Base, utcnow


class RefreshToken(Base):
    """Refresh token record; only the HMAC digest of the raw token is stored."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user_accounts.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(Uuid, ForeignKey("user_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    session = relationship("UserSession", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user_revoked", "user_id", "revoked_at"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self):
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, session_id={self.session_id})>"


class RevokedJti(Base):
    """Denylisted access-token identifier."""

    __tablename__ = "revoked_jtis"

    jti = Column(Uuid, primary_key=True)
    user_id = Column(Uuid, ForeignKey("user_accounts.id", ondelete="CASCADE"), nullable=True, index=True)
    revoked_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<RevokedJti(jti={self.jti}, user_id={self.user_id})>"
