"""User account model"""

import uuid

from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from authkeeper.core.database import Base, utcnow


class UserAccount(Base):
    """Credentials needed to authenticate a sign-in"""

    __tablename__ = "user_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    password_changed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, username='{self.username}')>"
