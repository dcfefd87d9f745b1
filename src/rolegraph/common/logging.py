"""Console logging for rolegraph.

Records render as one line: UTC timestamp, level, logger, correlation id,
the event name, then any ``extra`` fields as ``key=value``::

    2025-11-27T02:57:00.302Z INFO  rolegraph.features.rbac.service [cid=-] rbac.role.create.success role=editor

Event names are dotted (``rbac.parent.add.success``); structured fields are
built with :func:`log_context`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from rolegraph.settings import Settings

_correlation_id: ContextVar[str | None] = ContextVar("rolegraph_correlation_id", default=None)

# Attributes every LogRecord carries; anything else arrived through `extra`.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime", "correlation_id", "taskName"}

_CONFIGURED_FLAG = "_rolegraph_configured"


class ConsoleLogFormatter(logging.Formatter):
    """Single-line formatter with correlation id and ``key=value`` extras."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{stamp:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or _correlation_id.get() or "-"
        )
        line = super().format(record)
        extras = [
            f"{key}={_format_extra_value(value)}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        ]
        return " ".join([line, *extras])


def setup_logging(settings: Settings) -> None:
    """Install the console handler on the root logger at ``settings.logging_level``.

    The handler is installed once per process; later calls only change the level.
    Alembic and SQLAlchemy loggers propagate to the root so every line shares
    one format.
    """

    root = logging.getLogger()
    level = logging.getLevelName(settings.logging_level)
    if getattr(root, _CONFIGURED_FLAG, False):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(ConsoleLogFormatter())
    root.handlers = [handler]
    root.setLevel(level)

    for name in ("alembic", "sqlalchemy"):
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
    if settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    setattr(root, _CONFIGURED_FLAG, True)


def bind_log_context(correlation_id: str | None) -> None:
    """Tag every record logged by the current task with ``correlation_id``."""
    _correlation_id.set(correlation_id)


def clear_log_context() -> None:
    _correlation_id.set(None)


def log_context(
    *,
    user_id: str | None = None,
    role: str | None = None,
    parent: str | None = None,
    scope: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build an ``extra`` payload, leaving out the named fields that are unset.

    Example:
        logger.info(
            "rbac.parent.add.success",
            extra=log_context(role="editor", parent="admin", propagated=3),
        )
    """

    named = {"user_id": user_id, "role": role, "parent": parent, "scope": scope}
    payload = {key: value for key, value in named.items() if value is not None}
    payload.update(extra)
    return payload


def _format_extra_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (str, bytes)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return ",".join(sorted(str(item) for item in value))
    if isinstance(value, Iterable):
        return ",".join(str(item) for item in value)
    return str(value)


__all__ = [
    "ConsoleLogFormatter",
    "bind_log_context",
    "clear_log_context",
    "log_context",
    "setup_logging",
]
