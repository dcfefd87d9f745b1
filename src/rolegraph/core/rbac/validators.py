"""Name-format checks for roles and scopes."""

from __future__ import annotations

from .errors import InvalidNameError


def _is_well_formed(value: object) -> bool:
    return isinstance(value, str) and bool(value) and value.strip() == value


def validate_role_name(name: object) -> str:
    """Return ``name`` unchanged, or raise when it is empty or padded with whitespace."""

    if not _is_well_formed(name):
        raise InvalidNameError("role", name)
    return name  # type: ignore[return-value]


def validate_scope_name(name: object) -> str | None:
    """Like :func:`validate_role_name`, but ``None`` (the global scope) is accepted."""

    if name is None:
        return None
    if not _is_well_formed(name):
        raise InvalidNameError("scope", name)
    return name  # type: ignore[return-value]


__all__ = ["validate_role_name", "validate_scope_name"]
