"""API dependencies - component lookup and the authenticated-request gate"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from authkeeper.core.database import get_db
from authkeeper.core.exceptions import InvalidCredentialError, StoreUnavailableError
from authkeeper.services.access_tokens import AccessTokenClaims
from authkeeper.services.auth_service import AuthService
from authkeeper.services.container import AuthServices

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AuthServices:
    """
    Components wired at startup

    Raises:
        StoreUnavailableError: If startup has not provisioned the signing keys
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise StoreUnavailableError("Authentication service is not initialized")
    return services


def get_auth_service(services: AuthServices = Depends(get_services)) -> AuthService:
    return services.auth


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> AccessTokenClaims:
    """
    Verified claims of the bearer access token

    Args:
        credentials: HTTP Bearer credentials
        db: Database session
        auth: Auth use cases

    Returns:
        Claims of a signed, unexpired, non-revoked token

    Raises:
        InvalidCredentialError: If the token is missing, invalid or revoked
        StoreUnavailableError: If the revocation check cannot be made
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredentialError(reason="missing_bearer")
    return auth.authenticate(db, credentials.credentials)
