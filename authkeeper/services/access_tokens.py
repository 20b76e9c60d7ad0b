"""Short-lived signed access tokens."""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from authkeeper.config import settings
from authkeeper.core.database import utcnow
from authkeeper.core.security import SigningKeyPair

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class Principal:
    """Identity embedded in an access token."""

    user_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    username: Optional[str] = None
    session_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class IssuedAccessToken:
    token: str
    jti: uuid.UUID
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified claims of a presented access token."""

    user_id: uuid.UUID
    tenant_id: Optional[uuid.UUID]
    username: Optional[str]
    session_id: Optional[uuid.UUID]
    jti: uuid.UUID
    issued_at: datetime
    expires_at: datetime

    @property
    def principal(self) -> Principal:
        return Principal(
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            username=self.username,
            session_id=self.session_id,
        )


def _to_timestamp(value: datetime) -> int:
    return calendar.timegm(value.timetuple())


def _from_timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


class AccessTokenIssuer:
    """
    Mint and verify RS256 access tokens.

    Tokens are stateless. Each carries a unique jti so the revocation registry
    can deny it before its natural expiry.
    """

    def __init__(
        self,
        key_pair: SigningKeyPair,
        algorithm: Optional[str] = None,
        issuer: Optional[str] = None,
        expires_minutes: Optional[int] = None,
    ):
        self._key_pair = key_pair
        self._algorithm = algorithm or settings.JWT_ALGORITHM
        self._issuer = issuer or settings.JWT_ISSUER
        self._lifetime = timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def expires_in_seconds(self) -> int:
        return int(self._lifetime.total_seconds())

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def public_key_pem(self) -> str:
        return self._key_pair.public_pem

    @property
    def kid(self) -> str:
        return self._key_pair.kid

    def issue(self, principal: Principal, now: Optional[datetime] = None) -> IssuedAccessToken:
        """
        Create an access token for a principal

        Args:
            principal: Identity to embed
            now: Issue time (naive UTC); defaults to the current time

        Returns:
            IssuedAccessToken: Encoded token with its jti and validity window
        """
        issued_at = (now or utcnow()).replace(microsecond=0)
        expires_at = issued_at + self._lifetime
        jti = uuid.uuid4()

        claims: Dict[str, Any] = {
            "sub": str(principal.user_id),
            "tid": str(principal.tenant_id) if principal.tenant_id else None,
            "iat": _to_timestamp(issued_at),
            "exp": _to_timestamp(expires_at),
            "jti": str(jti),
            "typ": ACCESS_TOKEN_TYPE,
            "iss": self._issuer,
        }
        if principal.username:
            claims["username"] = principal.username
        if principal.session_id:
            claims["sid"] = str(principal.session_id)

        token = jwt.encode(
            claims,
            self._key_pair.private_pem,
            algorithm=self._algorithm,
            headers={"kid": self._key_pair.kid},
        )
        return IssuedAccessToken(token=token, jti=jti, issued_at=issued_at, expires_at=expires_at)

    def decode(self, token: str) -> Optional[AccessTokenClaims]:
        """
        Verify signature, expiry, issuer and token type

        Args:
            token: Encoded access token

        Returns:
            Optional[AccessTokenClaims]: Claims, or None if the token is not acceptable
        """
        try:
            payload = jwt.decode(
                token,
                self._key_pair.public_pem,
                algorithms=[self._algorithm],
                issuer=self._issuer,
            )
        except JWTError as exc:
            logger.debug("Access token rejected: %s", exc)
            return None

        if payload.get("typ") != ACCESS_TOKEN_TYPE:
            return None

        try:
            tenant_raw = payload.get("tid")
            session_raw = payload.get("sid")
            return AccessTokenClaims(
                user_id=uuid.UUID(payload["sub"]),
                tenant_id=uuid.UUID(tenant_raw) if tenant_raw else None,
                username=payload.get("username"),
                session_id=uuid.UUID(session_raw) if session_raw else None,
                jti=uuid.UUID(payload["jti"]),
                issued_at=_from_timestamp(payload["iat"]),
                expires_at=_from_timestamp(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Access token with valid signature carried malformed claims")
            return None
