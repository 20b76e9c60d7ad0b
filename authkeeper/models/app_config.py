"""Named configuration values (signing key material lives here)."""

import uuid

from sqlalchemy import Column, String, DateTime, Text, Uuid

from authkeeper.core.database import Base, utcnow


class AppConfig(Base):
    """Key/value row; config_key is unique so concurrent writers collide."""

    __tablename__ = "app_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    config_key = Column(String(100), unique=True, nullable=False)
    config_value = Column(Text, nullable=False)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<AppConfig(config_key='{self.config_key}')>"
