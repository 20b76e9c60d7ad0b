"""Result type returned by refresh-token validation and rotation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class TokenErrorKind(str, Enum):
    """Why a refresh token was rejected (internal only)."""

    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[TokenErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "TokenResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: TokenErrorKind) -> "TokenResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(f"token result is an error: {self.error.value}")
        return self.value  # type: ignore[return-value]
