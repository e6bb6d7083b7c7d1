"""Human-friendly configuration loader.

The ``AppSettings`` class centralises every environment variable the backend
relies on. That means anyone inspecting the project can quickly answer:

*What:* Which settings exist and what do they control?
*When:* They are read once, the first time ``get_settings`` is called.
*Why:* Centralising configuration prevents magic strings scattered all over the
codebase.
*How:* ``pydantic-settings`` reads the environment (and ``.env`` files) with a
sensible default for every value so the service boots in development without
extra setup.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "AssetTrack"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    LOG_LEVEL: str = "INFO"

    # ---- Authentication provider
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    PASSWORD_RESET_TTL_MIN: int = 30
    # Accounts registered with one of these emails receive the ``admin`` role.
    ADMIN_EMAILS: Annotated[list[str], NoDecode] = Field(default_factory=list)
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    # Empty means "SQLite file under DATA_DIR", resolved in ``get_settings``.
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DATABASE_URL", "DB_URL"))

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    # ---- Realtime change channel
    REALTIME_QUEUE_SIZE: int = 100
    REALTIME_KEEPALIVE_SECONDS: float = 15.0

    @field_validator("ALLOWED_ORIGINS", "ADMIN_EMAILS", mode="before")
    @classmethod
    def parse_csv_list(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("value must be a comma separated string or list")

    @property
    def admin_emails(self) -> set[str]:
        return {email.lower() for email in self.ADMIN_EMAILS}


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR / 'assettrack.db'}"
    return settings


# Instantiating here means importing ``settings`` anywhere instantly gives you
# access to the configured values without rebuilding the object each time.
settings = get_settings()
