"""Interfaces for collaborators the RBAC service consumes but does not own."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PrincipalDirectory(Protocol):
    """Resolves principal identifiers to principal records.

    The engine only stores principal ids; callers that want full principal
    objects from ``get_users_in_role`` supply an implementation backed by
    their identity store.
    """

    async def get_many(self, principal_ids: Sequence[str]) -> list[Any]:  # pragma: no cover
        ...


__all__ = ["PrincipalDirectory"]
