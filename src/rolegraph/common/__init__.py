"""Common utilities and helpers used across rolegraph."""

__all__ = [
    "logging",
]
