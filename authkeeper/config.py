"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: project root
_BASE_DIR = Path(__file__).resolve().parent.parent

DEV_REFRESH_TOKEN_HASH_KEY = "dev-refresh-token-hash-key-change-in-production"


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Authkeeper Token Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "authkeeper_db"
    POSTGRES_USER: str = "authkeeper"
    POSTGRES_PASSWORD: str = "authkeeper"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Signing keys / access tokens
    JWT_ALGORITHM: str = "RS256"
    JWT_ISSUER: str = "authkeeper"
    RSA_KEY_SIZE: int = 2048
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60

    # Refresh tokens
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    REFRESH_TOKEN_BYTES: int = 32
    REFRESH_TOKEN_HASH_KEY: str = DEV_REFRESH_TOKEN_HASH_KEY

    # Housekeeping sweep for expired denylist/refresh rows
    HOUSEKEEPING_INTERVAL_SECONDS: float = 3600.0

    # Retry-After sent with 503s when the token store is unreachable
    STORE_RETRY_AFTER_SECONDS: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Peers whose X-Forwarded-For header is believed; empty means none
    TRUSTED_PROXY_IPS: Annotated[List[str], NoDecode] = []

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", "TRUSTED_PROXY_IPS", mode="before")
    @classmethod
    def _parse_str_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            CORS_ORIGINS=http://localhost:3000,http://example.com
            TRUSTED_PROXY_IPS=10.0.0.2,10.0.0.3
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "authkeeper.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate token security settings.

        Key size and token entropy floors apply everywhere; the hash key check
        only applies in production.

        Raises:
            ValueError: If insecure values are detected.
        """
        if self.RSA_KEY_SIZE < 2048:
            raise ValueError("RSA_KEY_SIZE must be at least 2048 bits.")

        # token_urlsafe(n) carries n bytes of entropy; 16 bytes = 128 bits
        if self.REFRESH_TOKEN_BYTES < 16:
            raise ValueError("REFRESH_TOKEN_BYTES must be at least 16 (128 bits of entropy).")

        if self.JWT_ALGORITHM not in {"RS256", "RS384", "RS512"}:
            raise ValueError(f"Unsupported JWT_ALGORITHM for RSA signing keys: {self.JWT_ALGORITHM}")

        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_hash_keys = {
            "",
            DEV_REFRESH_TOKEN_HASH_KEY,
            "change-me",
        }
        if self.REFRESH_TOKEN_HASH_KEY in insecure_hash_keys or len(self.REFRESH_TOKEN_HASH_KEY) < 32:
            raise ValueError(
                "Insecure REFRESH_TOKEN_HASH_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
