"""Traversals over the role DAG."""

from __future__ import annotations

from rolegraph.core.rbac.validators import validate_role_name

from .repository import RolesRepository


class RoleClosure:
    """Compute ancestor/descendant sets from the stored parent-to-child edges.

    Traversals only follow edges into roles that still exist; a dangling child
    reference contributes nothing.
    """

    def __init__(self, roles: RolesRepository) -> None:
        self._roles = roles

    async def descendants_of(self, name: str) -> set[str]:
        """Every existing role reachable from ``name`` through child edges."""

        found: set[str] = set()
        frontier = {name}
        while frontier:
            children = await self._roles.find_child_names(frontier)
            frontier = children - found - {name}
            found |= frontier
        return found

    async def inherited_closure_of(self, name: str) -> set[str]:
        """``name`` plus all of its descendants."""

        return {name} | await self.descendants_of(name)

    async def ancestors_of(self, name: str) -> set[str]:
        """Every role from which ``name`` is reachable, excluding ``name`` itself."""

        found: set[str] = set()
        frontier = {name}
        while frontier:
            parents = await self._roles.find_parent_names(frontier)
            frontier = parents - found - {name}
            found |= frontier
        return found

    async def is_ancestor_of(self, parent: str | None, child: str | None) -> bool:
        """Return whether ``child`` is ``parent`` or reachable from it."""

        if parent == child:
            return True
        if parent is None or child is None:
            return False
        validate_role_name(parent)
        validate_role_name(child)

        visited: set[str] = set()
        pending = [parent]
        while pending:
            current = pending.pop()
            if current in visited:
                continue
            visited.add(current)
            if not await self._roles.exists(current):
                continue
            for child_name in await self._roles.child_names(current):
                if child_name == child:
                    return True
                if child_name not in visited:
                    pending.append(child_name)
        return False


__all__ = ["RoleClosure"]
