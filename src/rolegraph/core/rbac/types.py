"""RBAC type definitions used across the stack."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeAlias
from uuid import UUID

from .validators import validate_scope_name


@dataclass(frozen=True, slots=True)
class Scope:
    """Tenancy qualifier of an assignment: global (``name is None``) or a named scope."""

    name: str | None = None

    def __post_init__(self) -> None:
        validate_scope_name(self.name)

    @classmethod
    def of(cls, value: Scope | str | None) -> Scope:
        if isinstance(value, Scope):
            return value
        if value is None:
            return GLOBAL_SCOPE
        return cls(value)

    @classmethod
    def named(cls, name: str) -> Scope:
        return cls(name)

    @property
    def is_global(self) -> bool:
        return self.name is None

    def __str__(self) -> str:
        return "global" if self.name is None else self.name


GLOBAL_SCOPE = Scope()


@dataclass(frozen=True, slots=True)
class AssignmentOptions:
    """Normalized options shared by the assignment and query operations.

    ``scope`` selects the tenancy scope (global when unset). ``any_scope``
    ignores ``scope`` entirely. ``only_scoped`` drops the implicit global scope
    from listings. ``only_assigned`` reports directly assigned roles instead of
    inherited ones. ``full_objects`` returns assignment records instead of
    names. ``if_exists`` turns a missing role into a silent no-op on grant.
    """

    scope: Scope = GLOBAL_SCOPE
    any_scope: bool = False
    only_scoped: bool = False
    only_assigned: bool = False
    full_objects: bool = False
    if_exists: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.scope, Scope):
            object.__setattr__(self, "scope", Scope.of(self.scope))

    def scope_filter(self, *, honor_only_scoped: bool = True) -> tuple[Scope, ...] | None:
        """Scopes a matching assignment may carry; ``None`` means any scope."""

        if self.any_scope:
            return None
        if honor_only_scoped and self.only_scoped:
            return (self.scope,)
        return tuple(dict.fromkeys((self.scope, GLOBAL_SCOPE)))

    def exact_scope(self) -> Scope | None:
        """The single scope a mutation targets, or ``None`` under ``any_scope``."""

        return None if self.any_scope else self.scope


OptionsInput: TypeAlias = "AssignmentOptions | Mapping[str, Any] | Scope | str | None"


def normalize_options(options: Any = None, **overrides: Any) -> AssignmentOptions:
    """Coerce a structured options value or a bare scope name into ``AssignmentOptions``."""

    if isinstance(options, AssignmentOptions):
        normalized = options
    elif options is None or isinstance(options, (str, Scope)):
        normalized = AssignmentOptions(scope=Scope.of(options))
    elif isinstance(options, Mapping):
        payload = dict(options)
        payload["scope"] = Scope.of(payload.get("scope"))
        normalized = AssignmentOptions(**payload)
    else:
        raise TypeError(f"Unsupported options value: {options!r}")

    if overrides:
        if "scope" in overrides:
            overrides["scope"] = Scope.of(overrides["scope"])
        normalized = replace(normalized, **overrides)
    return normalized


@dataclass(frozen=True, slots=True)
class RoleView:
    """Read-only snapshot of a role and its direct children."""

    name: str
    children: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RoleAssignmentView:
    """Read-only snapshot of an assignment with its inherited closure."""

    id: UUID
    user_id: str
    role: str
    scope: Scope
    inherited_roles: frozenset[str]


__all__ = [
    "GLOBAL_SCOPE",
    "AssignmentOptions",
    "OptionsInput",
    "RoleAssignmentView",
    "RoleView",
    "Scope",
    "normalize_options",
]
