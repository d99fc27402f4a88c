# sarvasync/config.py
"""Application configuration loaded from environment variables.

Settings are read once per process. Any missing or malformed secret raises
ConfigurationError so the process never starts half-configured.
"""
import string
from functools import lru_cache

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sarvasync.errors import ConfigurationError


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite+aiosqlite:///./sarvasync.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # public URLs
    SERVER_URL: str = "http://localhost:3000"
    CORS_ORIGIN: str = "http://localhost:5173"

    # session tokens
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    REFRESH_TOKEN_HASH_ROUNDS: int = 12
    JWT_ALGORITHM: str = "HS256"

    # magic link
    MAGIC_LINK_SECRET: str
    MAGIC_LINK_EXPIRE_MINUTES: int = 15
    MAGIC_LINK_FROM: str = "Login <onboarding@sarvasync.app>"

    # credential vault (AES-256-GCM key, hex)
    OAUTH_TOKEN_ENCRYPTION_KEY: str

    # google / youtube
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str

    # smtp
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""

    # analytics sync (UTC)
    ANALYTICS_SYNC_HOUR: int = 2
    ANALYTICS_SYNC_MINUTE: int = 0
    ANALYTICS_SYNC_ON_STARTUP: bool | None = None
    ANALYTICS_SYNC_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator(
        "ACCESS_TOKEN_SECRET",
        "REFRESH_TOKEN_SECRET",
        "MAGIC_LINK_SECRET",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
    )
    @classmethod
    def check_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("OAUTH_TOKEN_ENCRYPTION_KEY")
    @classmethod
    def check_encryption_key(cls, v: str) -> str:
        if len(v) != 64 or any(c not in string.hexdigits for c in v):
            raise ValueError("must be a 64-character hex string")
        return v

    @field_validator("ANALYTICS_SYNC_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("must be between 0 and 23")
        return v

    @field_validator("ANALYTICS_SYNC_MINUTE")
    @classmethod
    def check_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError("must be between 0 and 59")
        return v

    @model_validator(mode="after")
    def check_distinct_token_secrets(self):
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def sync_on_startup(self) -> bool:
        if self.ANALYTICS_SYNC_ON_STARTUP is None:
            return not self.is_production
        return self.ANALYTICS_SYNC_ON_STARTUP


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "settings" for err in e.errors())
        raise ConfigurationError(f"Invalid configuration: {fields}") from e
