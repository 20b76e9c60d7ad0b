"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


class InvalidCredentialError(AuthenticationError):
    """
    Token is unknown, revoked or expired.

    The three cases share one message so a caller cannot tell which one
    occurred. The internal kind is kept for logging only.
    """
    def __init__(self, reason: Optional[str] = None):
        super().__init__("Invalid or expired credential")
        self.reason = reason


class InvalidLoginError(AuthenticationError):
    """Invalid username or password"""
    def __init__(self):
        super().__init__("Invalid username or password")


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class SessionNotFoundError(ResourceNotFoundError):
    """Login session does not exist"""
    def __init__(self, session_id: Any = None):
        super().__init__("Session")
        if session_id is not None:
            self.details = {"session_id": str(session_id)}


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# System Errors
class StoreUnavailableError(BaseAPIException):
    """Record Store could not be reached; never reported as an invalid credential"""
    def __init__(self, message: str = "Credential store temporarily unavailable"):
        super().__init__(message, status_code=503)


class KeyGenerationError(RuntimeError):
    """
    Signing key pair could not be generated, persisted or decoded.

    Not an API error: raising it aborts process startup.
    """
