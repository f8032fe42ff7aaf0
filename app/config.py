"""
Application Configuration
Uses Pydantic Settings for environment-based configuration
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Storefront API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|test|staging|production)$")
    API_V1_STR: str = "/api/v1"

    # Security
    SECRET_KEY: str  # signs access tokens
    REFRESH_SECRET_KEY: str  # signs refresh tokens and keys their fingerprints
    CSRF_SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=15, ge=1)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, ge=1)
    CSRF_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1)

    # Cookies
    REFRESH_COOKIE_NAME: str = "refresh_token"
    CSRF_COOKIE_NAME: str = "csrf_token"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    # Provisioning shortcut: a failed login for an unknown email registers it.
    # Never enable outside throwaway environments.
    AUTO_PROVISION_ON_LOGIN: bool = False

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(
        default=["http://localhost", "http://localhost:5173"]
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False
    # Synchronous URL for Alembic; derived from DATABASE_URL when empty
    DATABASE_URL_SYNC: str = ""

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # Rate Limiting (login and register, per client IP)
    AUTH_RATE_LIMIT: int = 60
    AUTH_RATE_WINDOW_MINUTES: int = 15

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        if isinstance(v, str):
            v = [origin.strip() for origin in v.split(",") if origin.strip()]
        if "*" in v:
            # Cookies carry session state, so credentials require explicit origins
            raise ValueError("CORS_ORIGINS must list explicit origins, wildcard is not allowed")
        return v

    @property
    def cookie_secure(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def refresh_cookie_max_age(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    @property
    def migration_database_url(self) -> str:
        if self.DATABASE_URL_SYNC:
            return self.DATABASE_URL_SYNC
        return self.DATABASE_URL.replace("+aiosqlite", "")

    @property
    def csrf_cookie_max_age(self) -> int:
        return self.CSRF_TOKEN_EXPIRE_MINUTES * 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once, at startup."""
    load_dotenv()
    return Settings()  # type: ignore[call-arg]


@dataclass(frozen=True)
class SecurityPolicy:
    """
    Request-guard strategy chosen by the deployment entrypoint.

    Guards receive the policy at assembly time instead of inspecting the
    environment themselves.
    """

    enforce_csrf: bool = True
    rate_limit_auth: bool = True

    @classmethod
    def strict(cls) -> "SecurityPolicy":
        return cls(enforce_csrf=True, rate_limit_auth=True)

    @classmethod
    def relaxed(cls) -> "SecurityPolicy":
        """Both guards off; for test harnesses that exercise handlers directly."""
        return cls(enforce_csrf=False, rate_limit_auth=False)


class Role(str, Enum):
    """Account roles"""

    CUSTOMER = "customer"
    ADMIN = "admin"


DEFAULT_ROLES: tuple[Role, ...] = (Role.CUSTOMER,)

# Shortest password accepted when an account is created
MIN_PASSWORD_LENGTH = 6
