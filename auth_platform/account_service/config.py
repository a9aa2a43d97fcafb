"""
Configuration management for the account service
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Account service configuration loaded from environment variables"""

    # Runtime
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./app.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # Tokens and hashing
    SECRET_KEY: str = "change-this-secret-in-prod-0f9c2d71b4e8a365"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    BCRYPT_ROUNDS: int = 8

    # Accounts
    DEFAULT_ROLE: str = "USER,DRIVER"

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]

    # Mail delivery (SMTP_HOST unset means reset links are only logged)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = "no-reply@localhost"
    MAIL_FROM_NAME: str = "Accounts"
    PASSWORD_RESET_URL: str = "http://localhost:3000/reset-password"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process settings, read once from the environment."""
    return Settings()
