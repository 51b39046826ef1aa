"""Environment-driven configuration for ClientDesk.

Every knob the service reads lives on ``AppSettings``. Values come from the
process environment first and from ``.env`` / ``.env.local`` second, so a
developer can boot the API with no setup while production overrides
everything through the container environment.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "ClientDesk"
    LOG_LEVEL: str = "INFO"
    # IANA zone deciding which year a proposal/invoice number belongs to; empty is UTC.
    TZ: str = ""

    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")

    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    # Empty means a SQLite file under DATA_DIR.
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    HOST: str = "0.0.0.0"
    PORT: int = 8090

    # Ceilings for each code namespace. Three digits keeps the printed
    # formats (``007``, ``2026-007``, ``INV-2026-007``) fixed-width.
    CLIENT_CODE_MAX: int = 999
    PROPOSAL_NUMBER_MAX: int = 999
    INVOICE_NUMBER_MAX: int = 999

    # Duplicate-on-write retries performed by entity creation.
    SEQUENCE_MAX_RETRIES: int = 3
    # Compare-and-swap attempts on the counter row before giving up.
    SEQUENCE_CAS_ATTEMPTS: int = 5

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")

    @field_validator("CLIENT_CODE_MAX", "PROPOSAL_NUMBER_MAX", "INVOICE_NUMBER_MAX")
    @classmethod
    def positive_ceiling(cls, value: int) -> int:
        if value < 1:
            raise ValueError("sequence ceilings must be at least 1")
        return value

    @field_validator("SEQUENCE_MAX_RETRIES", "SEQUENCE_CAS_ATTEMPTS")
    @classmethod
    def positive_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("retry counts must be at least 1")
        return value

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'clientdesk.db'}"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if not settings.DB_URL:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
