"""Database plumbing (SQLAlchemy engines, sessions, base classes, types)."""

from .base import NAMING_CONVENTION, Base, metadata
from .engine import build_database_url, check_database_ready, get_engine, reset_database_state
from .migrations import ensure_database_ready, render_sync_url, upgrade_database
from .mixins import TimestampMixin, UUIDPrimaryKeyMixin, utc_now
from .session import get_sessionmaker, reset_session_state, session_scope
from .types import UTCDateTime

__all__ = [
    "Base",
    "NAMING_CONVENTION",
    "metadata",
    "build_database_url",
    "check_database_ready",
    "get_engine",
    "reset_database_state",
    "ensure_database_ready",
    "render_sync_url",
    "upgrade_database",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "utc_now",
    "get_sessionmaker",
    "reset_session_state",
    "session_scope",
    "UTCDateTime",
]
