from __future__ import annotations

import uuid

import pytest
from sqlalchemy.engine import make_url

from rolegraph.db.engine import (
    build_database_url,
    engine_cache_key,
    is_sqlite_memory_url,
    sqlite_database_path,
)
from rolegraph.db.migrations import MIGRATIONS_DIR, render_sync_url
from rolegraph.db.mixins import generate_uuid7
from rolegraph.settings import Settings


@pytest.mark.parametrize(
    ("dsn", "expected"),
    [
        ("sqlite+aiosqlite:///:memory:", True),
        ("sqlite+aiosqlite://", True),
        ("sqlite+aiosqlite:///file:rbac?mode=memory&cache=shared&uri=true", True),
        ("sqlite+aiosqlite:////tmp/rolegraph.sqlite", False),
    ],
)
def test_is_sqlite_memory_url(dsn: str, expected: bool) -> None:
    assert is_sqlite_memory_url(make_url(dsn)) is expected


def test_render_sync_url_drops_async_driver() -> None:
    settings = Settings(database_dsn="sqlite+aiosqlite:////tmp/rolegraph.sqlite")

    assert render_sync_url(settings) == "sqlite:////tmp/rolegraph.sqlite"
    assert render_sync_url("postgresql+asyncpg://rg:pw@db/rbac") == "postgresql://rg:pw@db/rbac"


def test_engine_cache_key_tracks_settings() -> None:
    first = Settings(database_dsn="sqlite+aiosqlite:///:memory:")
    second = Settings(database_dsn="sqlite+aiosqlite:///:memory:", database_echo=True)

    assert build_database_url(first).get_backend_name() == "sqlite"
    assert engine_cache_key(first) == engine_cache_key(first.model_copy())
    assert engine_cache_key(first) != engine_cache_key(second)


def test_sqlite_database_path(tmp_path) -> None:
    assert sqlite_database_path(make_url("sqlite+aiosqlite:///:memory:")) is None
    assert sqlite_database_path(make_url("postgresql+asyncpg://db/rbac")) is None
    target = tmp_path / "db" / "rbac.sqlite"
    assert sqlite_database_path(make_url(f"sqlite+aiosqlite:///{target}")) == target


def test_migration_scripts_ship_with_the_package() -> None:
    assert (MIGRATIONS_DIR / "env.py").is_file()
    assert (MIGRATIONS_DIR / "versions" / "0001_role_graph.py").is_file()


def test_generate_uuid7_returns_unique_uuids() -> None:
    ids = {generate_uuid7() for _ in range(100)}

    assert len(ids) == 100
    assert all(isinstance(value, uuid.UUID) for value in ids)
