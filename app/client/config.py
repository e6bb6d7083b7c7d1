from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Where the client finds the backend and keeps its local state."""

    model_config = SettingsConfigDict(
        env_prefix="ASSETTRACK_",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    BASE_URL: str = "http://localhost:8089"
    # Plays the part of the browser's localStorage: session, legacy records, migration marker.
    STORAGE_PATH: Path = Field(default_factory=lambda: Path.home() / ".assettrack" / "local_storage.json")
    TIMEOUT: float = 15.0
    RECONNECT_DELAY: float = 3.0


@lru_cache(maxsize=1)
def get_client_settings() -> ClientSettings:
    return ClientSettings()
