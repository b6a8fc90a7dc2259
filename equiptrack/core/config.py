"""Environment-driven configuration.

*What:* Every setting the service reads from the environment.
*When:* Loaded once, the first time ``get_settings`` is called.
*How:* ``pydantic-settings`` maps env vars (and ``.env`` files) onto typed
fields; defaults let a developer boot against a local SQLite file.
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

    APP_NAME: str = "EquipTrack"
    APP_ENV: str = "dev"

    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")

    DB_URL: str | None = Field(default=None, validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))
    DB_BUSY_TIMEOUT_S: float = 15.0

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15

    LOG_LEVEL: str = "INFO"
    # Comma separated in the environment; the validator below splits it.
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)
    METRICS_ENABLED: bool = True

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'equiptrack.db'}"

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


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    if settings.DB_URL is None:
        # Only the default SQLite file lives under DATA_DIR.
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
