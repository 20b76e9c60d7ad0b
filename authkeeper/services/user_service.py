"""User service - credential checks for sign-in and password change"""

from sqlalchemy.orm import Session
from typing import Optional
import uuid
from authkeeper.core.database import utcnow
from authkeeper.models.user import UserAccount
from authkeeper.core.security import get_password_hash, verify_password
from authkeeper.core.exceptions import InvalidLoginError, ValidationError
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserService:
    """Service for user credential management"""

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        email: str,
        password: str,
        tenant_id: Optional[uuid.UUID] = None,
    ) -> UserAccount:
        """
        Create new user account

        Args:
            db: Database session
            username: Unique username
            email: Unique email
            password: Plain text password
            tenant_id: Owning tenant

        Returns:
            Created user
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        user = UserAccount(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            username=username.strip().lower(),
            email=email.strip().lower(),
            password_hash=get_password_hash(password),
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Created user: {user.username}")
        return user

    @staticmethod
    def authenticate_user(db: Session, username: str, password: str) -> UserAccount:
        """
        Authenticate user

        Args:
            db: Database session
            username: Username
            password: Password

        Returns:
            Authenticated user
        """
        user = UserService.get_user_by_username(db, username)

        if not user or not user.is_active:
            raise InvalidLoginError()

        if not verify_password(password, user.password_hash):
            logger.warning(f"Failed sign-in for user: {user.username}")
            raise InvalidLoginError()

        logger.info(f"User authenticated: {user.username}")
        return user

    @staticmethod
    def change_password(db: Session, user: UserAccount, old_password: str, new_password: str) -> UserAccount:
        """
        Replace a user's password after checking the current one

        Args:
            db: Database session
            user: User account
            old_password: Current password
            new_password: Replacement password

        Returns:
            Updated user
        """
        if not verify_password(old_password, user.password_hash):
            raise InvalidLoginError()
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        user.password_hash = get_password_hash(new_password)
        user.password_changed_at = utcnow()
        db.commit()
        db.refresh(user)

        logger.info(f"Password changed for user: {user.username}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: uuid.UUID) -> Optional[UserAccount]:
        """Get user by ID"""
        return db.get(UserAccount, user_id)

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[UserAccount]:
        """Get user by username"""
        return db.query(UserAccount).filter(UserAccount.username == username.strip().lower()).first()


# Singleton instance
user_service = UserService()
