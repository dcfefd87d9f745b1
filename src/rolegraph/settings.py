"""rolegraph configuration, read from ``ROLEGRAPH_*`` environment variables."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

DEFAULT_DB_FILENAME = "rolegraph.sqlite"
DEFAULT_DB_PATH = Path("data") / "db" / DEFAULT_DB_FILENAME
DEFAULT_CONVERGE_MAX_ITERATIONS = 10_000


class Settings(BaseSettings):
    """Database, logging, and closure-propagation settings."""

    model_config = SettingsConfigDict(
        env_prefix="ROLEGRAPH_",
        env_file=".env",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "rolegraph"
    logging_level: str = "INFO"

    # Plain ``sqlite://`` URLs are upgraded to the aiosqlite driver.
    database_dsn: str | None = None
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)

    # Safety cap for every converge-until-stable loop.
    converge_max_iterations: int = Field(DEFAULT_CONVERGE_MAX_ITERATIONS, ge=1)

    @field_validator("logging_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        level = str(value or "").strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown logging level '{value}'")
        return level

    @field_validator("database_dsn", mode="before")
    @classmethod
    def _strip_dsn(cls, value: object) -> str | None:
        text = str(value or "").strip()
        return text or None

    @model_validator(mode="after")
    def _default_database(self) -> Settings:
        if self.database_dsn is None:
            path = DEFAULT_DB_PATH.expanduser().resolve()
            self.database_dsn = f"sqlite+aiosqlite:///{path.as_posix()}"
        url = make_url(self.database_dsn)
        if url.drivername == "sqlite":
            url = url.set(drivername="sqlite+aiosqlite")
        self.database_dsn = url.render_as_string(hide_password=False)
        return self


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _cached_settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""

    _cached_settings.cache_clear()
    return _cached_settings()


__all__ = [
    "DEFAULT_CONVERGE_MAX_ITERATIONS",
    "DEFAULT_DB_FILENAME",
    "Settings",
    "get_settings",
    "reload_settings",
]
