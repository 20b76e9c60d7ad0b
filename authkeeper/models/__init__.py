"""Database models"""

from authkeeper.models.user import UserAccount
from authkeeper.models.app_config import AppConfig
from authkeeper.models.session import UserSession
from authkeeper.models.token import RefreshToken, RevokedJti
from authkeeper.models.audit import AuthAuditEvent

__all__ = ["UserAccount", "AppConfig", "UserSession", "RefreshToken", "RevokedJti", "AuthAuditEvent"]
