"""
Application configuration

All settings are read from the environment (and an optional .env file).
"""

import logging
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


def _split_csv(value: str) -> List[str]:
    if not value:
        return []
    return [s.strip() for s in str(value).split(",") if s.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "vidtube"

    # Tokens
    ACCESS_TOKEN_SECRET: str = "change-me-access"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    REFRESH_TOKEN_SECRET: str = "change-me-refresh"
    REFRESH_TOKEN_EXPIRE_DAYS: int = 10
    JWT_ALGORITHM: str = "HS256"
    COOKIE_SECURE: bool = True

    # HTTP
    CORS_ORIGINS: str = "*"
    PORT: int = 8000

    # Media
    UPLOAD_DIR: str = "uploads"
    MEDIA_BASE_URL: str = "/static"

    # Google sign-in
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_AUTH_REDIRECT: str = "http://localhost:8000/api/v1/auth/google/callback"

    LOG_LEVEL: str = "INFO"

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.CORS_ORIGINS) or ["*"]


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
