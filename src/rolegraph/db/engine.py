"""Async engine construction, cached per settings."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from rolegraph.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_engine_key: tuple[Any, ...] | None = None


def build_database_url(settings: Settings) -> URL:
    return make_url(settings.database_dsn)


def engine_cache_key(settings: Settings) -> tuple[Any, ...]:
    """Settings that force a new engine (and session factory) when they change."""

    return (
        build_database_url(settings).render_as_string(hide_password=False),
        settings.database_echo,
        settings.database_pool_size,
        settings.database_max_overflow,
        settings.database_pool_timeout,
    )


def is_sqlite_memory_url(url: URL) -> bool:
    database = (url.database or "").strip()
    if database in ("", ":memory:"):
        return True
    return database.startswith("file:") and url.query.get("mode") == "memory"


def sqlite_database_path(url: URL) -> Path | None:
    """Filesystem path of a SQLite database, or ``None`` for in-memory/URI databases."""

    if url.get_backend_name() != "sqlite" or is_sqlite_memory_url(url):
        return None
    database = url.database.strip()
    if database.startswith("file:"):
        return None
    path = Path(database)
    return path if path.is_absolute() else Path.cwd() / path


def ensure_sqlite_database_directory(url: URL) -> None:
    path = sqlite_database_path(url)
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)


def _engine_options(settings: Settings, url: URL) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        # One shared connection: in-memory databases vanish with their connection.
        options["poolclass"] = StaticPool
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.database_pool_timeout,
        }
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
        options["pool_timeout"] = settings.database_pool_timeout
    return options


def _install_sqlite_pragmas(engine: AsyncEngine, *, use_wal: bool) -> None:
    pragmas = ["PRAGMA foreign_keys=ON", "PRAGMA busy_timeout=30000"]
    if use_wal:
        pragmas.append("PRAGMA journal_mode=WAL")

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        try:
            for pragma in pragmas:
                cursor.execute(pragma)
        finally:
            cursor.close()


def _create_engine(settings: Settings) -> AsyncEngine:
    url = build_database_url(settings)
    ensure_sqlite_database_directory(url)
    engine = create_async_engine(
        url.render_as_string(hide_password=False),
        **_engine_options(settings, url),
    )
    if url.get_backend_name() == "sqlite":
        _install_sqlite_pragmas(engine, use_wal=not is_sqlite_memory_url(url))
    logger.debug("database.engine.created", extra={"backend": url.get_backend_name()})
    return engine


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Return the cached engine, rebuilding it when the database settings change."""

    global _engine, _engine_key
    settings = settings or get_settings()
    key = engine_cache_key(settings)
    if _engine is not None and _engine_key == key:
        return _engine
    if _engine is not None:
        _engine.sync_engine.dispose()
    _engine = _create_engine(settings)
    _engine_key = key
    return _engine


def reset_database_state() -> None:
    """Dispose the cached engine and forget session factories and bootstrap results."""

    global _engine, _engine_key
    if _engine is not None:
        _engine.sync_engine.dispose()
    _engine = None
    _engine_key = None

    from . import migrations, session

    session.reset_session_state()
    migrations.reset_bootstrap_state()


async def check_database_ready(settings: Settings | None = None) -> None:
    """Run ``SELECT 1`` on the engine; migrations are not applied."""

    engine = get_engine(settings)
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("database.readiness.failed", exc_info=exc)
        raise


__all__ = [
    "build_database_url",
    "check_database_ready",
    "engine_cache_key",
    "ensure_sqlite_database_directory",
    "get_engine",
    "is_sqlite_memory_url",
    "reset_database_state",
    "sqlite_database_path",
]
