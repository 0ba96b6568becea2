"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides helpers for accessing cached settings and for
configuring logging.
"""

import logging
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        SECRET_KEY: Key used to verify identity-provider JWTs.
        ALGORITHM: Algorithm the identity provider signs tokens with.
        AUTH_AUDIENCE: Expected ``aud`` claim, checked when set.
        AUTH_ISSUER: Expected ``iss`` claim, checked when set.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        UPLOAD_DIR: Directory where uploaded contact images are stored.
        LOG_LEVEL: Root logging level.
    """

    DATABASE_URL: str = "sqlite:///./db.sqlite"
    SECRET_KEY: str = "dev-secret"
    ALGORITHM: str = "HS256"
    AUTH_AUDIENCE: str | None = None
    AUTH_ISSUER: str | None = None
    ALLOWED_ORIGINS: List[str] = ["*"]
    UPLOAD_DIR: str = "./uploads"
    LOG_LEVEL: str = "INFO"

    class Config:
        """Pydantic configuration for loading environment variables."""

        env_file = ".env"
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once for the whole process.

    Args:
        level (str | None): Level name; defaults to ``LOG_LEVEL``.
    """

    logging.basicConfig(
        level=(level or get_settings().LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
