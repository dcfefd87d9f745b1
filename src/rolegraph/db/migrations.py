"""Alembic bootstrap for the role graph schema."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Connection, make_url

from rolegraph.settings import Settings, get_settings

from .engine import (
    build_database_url,
    ensure_sqlite_database_directory,
    get_engine,
    is_sqlite_memory_url,
)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

logger = logging.getLogger(__name__)

_bootstrap_lock = asyncio.Lock()
_bootstrapped: set[str] = set()


def render_sync_url(database: Settings | str) -> str:
    """Strip the async driver so Alembic can use the dialect's default DBAPI."""

    url = build_database_url(database) if isinstance(database, Settings) else make_url(database)
    return url.set(drivername=url.get_backend_name()).render_as_string(hide_password=False)


def alembic_config(settings: Settings) -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", render_sync_url(settings))
    # Leave the host application's logging alone.
    config.attributes["configure_logger"] = False
    return config


def upgrade_database(settings: Settings, connection: Connection | None = None) -> None:
    """Apply migrations up to ``head``, optionally on an existing connection."""

    config = alembic_config(settings)
    if connection is not None:
        config.attributes["connection"] = connection
    command.upgrade(config, "head")


async def ensure_database_ready(settings: Settings | None = None) -> None:
    """Migrate the configured database once per process."""

    settings = settings or get_settings()
    key = render_sync_url(settings)
    async with _bootstrap_lock:
        if key in _bootstrapped:
            return
        url = build_database_url(settings)
        if url.get_backend_name() == "sqlite" and is_sqlite_memory_url(url):
            # The schema must land on the engine's own (shared) connection.
            async with get_engine(settings).begin() as connection:
                await connection.run_sync(lambda sync: upgrade_database(settings, connection=sync))
        else:
            ensure_sqlite_database_directory(url)
            await asyncio.to_thread(upgrade_database, settings)
        _bootstrapped.add(key)
    logger.info("database.migrations.applied", extra={"backend": url.get_backend_name()})


def reset_bootstrap_state() -> None:
    _bootstrapped.clear()


__all__ = [
    "MIGRATIONS_DIR",
    "alembic_config",
    "ensure_database_ready",
    "render_sync_url",
    "reset_bootstrap_state",
    "upgrade_database",
]
