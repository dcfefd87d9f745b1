"""Alembic environment for the rolegraph schema."""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, make_url

import rolegraph.models  # noqa: F401  (registers tables on the metadata)
from rolegraph.db.base import metadata
from rolegraph.db.migrations import render_sync_url
from rolegraph.settings import get_settings

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)


def _database_url() -> str:
    return (
        config.get_main_option("sqlalchemy.url")
        or os.getenv("ALEMBIC_DATABASE_URL")
        or render_sync_url(get_settings())
    )


def _configure(**kwargs) -> None:
    url = _database_url()
    context.configure(
        target_metadata=metadata,
        # SQLite cannot ALTER most constraints in place.
        render_as_batch=make_url(url).get_backend_name() == "sqlite",
        **kwargs,
    )


def _run(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    _configure(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is not None:
        _run(connection)
        return

    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _run(connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
