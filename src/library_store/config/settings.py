from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache


DEFAULT_SQLITE_URL = "sqlite+aiosqlite:///./library.db"


class Settings(BaseSettings):
    """
    Application settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"

    # Database configuration.
    # An explicit DB_URL wins; otherwise the POSTGRES_* parts are used when a host is set,
    # and a local SQLite file is the last resort.
    DB_URL: str | None = None
    POSTGRES_DRIVER: str = "asyncpg"
    POSTGRES_USERNAME: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str | None = None

    # SQLAlchemy
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_PRE_PING: bool = True
    SQLITE_BUSY_TIMEOUT: float = 5.0  # seconds a writer waits for the SQLite lock

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path | None = None
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_SQL_LOGGING: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Derived settings ---
    @property
    def DATABASE_URL(self) -> str:
        """
        Return the connection URL for the relational store.

        Order of precedence:
        - `DB_URL` when given verbatim (any SQLAlchemy async URL).
        - A PostgreSQL URL assembled from the POSTGRES_* parts when `POSTGRES_HOST` is set.
        - A SQLite file in the working directory.
        """
        if self.DB_URL:
            return self.DB_URL

        if self.POSTGRES_HOST:
            return (
                f"postgresql+{self.POSTGRES_DRIVER}://"
                f"{self.POSTGRES_USERNAME or ''}:{self.POSTGRES_PASSWORD or ''}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/"
                f"{self.POSTGRES_DB or ''}"
            )

        return DEFAULT_SQLITE_URL

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str | None) -> str | None:
        """Logging expects upper-case level names."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("LOG_FORMAT", mode="before")
    @classmethod
    def normalize_log_format(cls, v: str | None) -> str | None:
        return v.lower() if isinstance(v, str) else v


@lru_cache()
def get_settings() -> Settings:
    return Settings()
