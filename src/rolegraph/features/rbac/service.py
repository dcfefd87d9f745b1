from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rolegraph.common.logging import log_context
from rolegraph.core.rbac.errors import RoleAlreadyExistsError, RoleCycleError, RoleNotFoundError
from rolegraph.core.rbac.service_interface import PrincipalDirectory
from rolegraph.core.rbac.types import (
    AssignmentOptions,
    OptionsInput,
    RoleAssignmentView,
    RoleView,
    Scope,
    normalize_options,
)
from rolegraph.core.rbac.validators import validate_role_name, validate_scope_name
from rolegraph.settings import Settings, get_settings

from .closure import RoleClosure
from .convergence import Step, converge
from .repository import AssignmentsRepository, RolesRepository

logger = logging.getLogger(__name__)


def _as_list(value: Any, *, kind: str) -> list[Any]:
    """Accept a single value or an iterable of values; ``None`` is an argument error."""

    if value is None:
        raise ValueError(f"Missing '{kind}' argument")
    if isinstance(value, str) or not isinstance(value, Iterable):
        return [value]
    return list(value)


class RbacService:
    """Role graph, assignment, and query operations over one database session.

    Every assignment stores ``inherited_roles``: its role plus every role
    reachable from it through child edges. Graph mutations repair that index
    for all affected assignments; queries only read it.

    The service flushes its statements but never commits; the caller owns the
    transaction (see :func:`rolegraph.db.session.session_scope`). When callers
    run with autocommit or split a mutation across transactions, a reader can
    observe stale ``inherited_roles`` between the topology write and the
    closure repair that follows it. That window is accepted in exchange for
    lookup-only authorization checks.
    """

    def __init__(
        self,
        *,
        session: AsyncSession,
        settings: Settings | None = None,
        principals: PrincipalDirectory | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._principals = principals
        self._roles = RolesRepository(session)
        self._assignments = AssignmentsRepository(session)
        self._closure = RoleClosure(self._roles)

    @property
    def closure(self) -> RoleClosure:
        return self._closure

    async def _converge(self, step: Step, *, operation: str) -> int:
        return await converge(
            step,
            operation=operation,
            max_iterations=self._settings.converge_max_iterations,
        )

    # ------------------------------------------------------------------
    # Role graph
    # ------------------------------------------------------------------

    async def create_role(self, name: str, *, unless_exists: bool = False) -> str | None:
        """Create a role without children.

        Returns the role name, or ``None`` when the role already existed and
        ``unless_exists`` is set.
        """

        validate_role_name(name)
        try:
            await self._roles.insert(name)
        except RoleAlreadyExistsError:
            if unless_exists:
                logger.debug("rbac.role.create.skipped", extra=log_context(role=name))
                return None
            raise
        logger.info("rbac.role.create.success", extra=log_context(role=name))
        return name

    async def delete_role(self, name: str) -> None:
        """Delete ``name``, its assignments, and every edge pointing at it."""

        validate_role_name(name)
        removed_assignments = await self._assignments.remove(role_name=name)

        async def _detach_from_parents() -> int:
            parents = await self._roles.find_parent_names((name,))
            if not parents:
                return 0
            ancestors = await self._closure.ancestors_of(name)
            for parent in parents:
                await self._roles.remove_child(parent, name)
            for ancestor in sorted(ancestors):
                inherited = await self._closure.inherited_closure_of(ancestor)
                await self._assignments.replace_inherited_roles(
                    role_name=ancestor,
                    roles=inherited,
                    containing=name,
                )
            return len(parents)

        detached = await self._converge(_detach_from_parents, operation="delete_role.detach")
        deleted = await self._roles.delete(name)
        if not deleted:
            logger.debug("rbac.role.delete.missing", extra=log_context(role=name))
            return
        logger.info(
            "rbac.role.delete.success",
            extra=log_context(
                role=name,
                assignments_removed=removed_assignments,
                edges_removed=detached,
            ),
        )

    async def rename_role(self, old_name: str, new_name: str) -> None:
        """Rename a role, rewriting assignments, closures, and parent edges."""

        validate_role_name(old_name)
        validate_role_name(new_name)
        if old_name == new_name:
            return
        if not await self._roles.exists(old_name):
            raise RoleNotFoundError(old_name)

        children = await self._roles.child_names(old_name)
        await self._roles.insert(new_name, children=children)

        assignments = await self._converge(
            lambda: self._assignments.rename_role(old_name, new_name),
            operation="rename_role.assignments",
        )
        closures = await self._converge(
            lambda: self._assignments.rename_inherited_role(old_name, new_name),
            operation="rename_role.inherited",
        )
        edges = await self._converge(
            lambda: self._roles.rename_child_references(old_name, new_name),
            operation="rename_role.children",
        )
        await self._roles.delete(old_name)
        logger.info(
            "rbac.role.rename.success",
            extra=log_context(
                role=new_name,
                previous=old_name,
                assignments=assignments,
                closures=closures,
                edges=edges,
            ),
        )

    async def add_roles_to_parent(self, roles: str | Iterable[str], parent: str) -> None:
        """Make every role in ``roles`` a child of ``parent``."""

        role_names = _as_list(roles, kind="roles")
        for role in role_names:
            validate_role_name(role)
        validate_role_name(parent)
        for role in role_names:
            await self._add_role_to_parent(role, parent)

    async def _add_role_to_parent(self, role: str, parent: str) -> None:
        if not await self._roles.exists(role):
            raise RoleNotFoundError(role)
        if not await self._roles.exists(parent):
            raise RoleNotFoundError(parent)

        inherited = await self._closure.inherited_closure_of(role)
        if parent in inherited:
            logger.warning("rbac.parent.add.cycle", extra=log_context(role=role, parent=parent))
            raise RoleCycleError(role, parent)

        added = await self._roles.add_child(parent, role)
        if not added:
            logger.debug("rbac.parent.add.exists", extra=log_context(role=role, parent=parent))
            return

        propagated = await self._converge(
            lambda: self._assignments.extend_inherited_roles(containing=parent, roles=inherited),
            operation="add_parent.propagate",
        )
        logger.info(
            "rbac.parent.add.success",
            extra=log_context(role=role, parent=parent, propagated=propagated),
        )

    async def remove_roles_from_parent(self, roles: str | Iterable[str], parent: str) -> None:
        """Remove every role in ``roles`` from the children of ``parent``."""

        role_names = _as_list(roles, kind="roles")
        for role in role_names:
            validate_role_name(role)
        validate_role_name(parent)
        for role in role_names:
            await self._remove_role_from_parent(role, parent)

    async def _remove_role_from_parent(self, role: str, parent: str) -> None:
        if not await self._roles.exists(role):
            raise RoleNotFoundError(role)

        removed = await self._roles.remove_child(parent, role)
        if not removed:
            logger.debug("rbac.parent.remove.absent", extra=log_context(role=role, parent=parent))
            return

        # Recompute from the live graph: another path may still reach the same roles.
        affected = {parent} | await self._closure.ancestors_of(parent)
        rewritten = 0
        for ancestor in sorted(affected):
            inherited = await self._closure.inherited_closure_of(ancestor)
            rewritten += await self._assignments.replace_inherited_roles(
                role_name=ancestor,
                roles=inherited,
                containing=role,
            )
        logger.info(
            "rbac.parent.remove.success",
            extra=log_context(role=role, parent=parent, rewritten=rewritten),
        )

    async def get_all_roles(self) -> list[RoleView]:
        return await self._roles.list_roles()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def add_users_to_roles(
        self,
        users: str | Iterable[str],
        roles: str | Iterable[str],
        options: OptionsInput = None,
    ) -> list[RoleAssignmentView]:
        """Grant every role in ``roles`` to every principal in ``users``.

        ``options`` may be a bare scope name. Returns the stored assignments.
        """

        user_ids = _as_list(users, kind="users")
        role_names = _as_list(roles, kind="roles")
        opts = normalize_options(options)
        for role in role_names:
            validate_role_name(role)

        granted: list[RoleAssignmentView] = []
        for user_id in user_ids:
            if not user_id:
                continue
            for role in role_names:
                assignment = await self._add_user_to_role(user_id, role, opts)
                if assignment is not None:
                    granted.append(assignment)
        return granted

    async def _add_user_to_role(
        self,
        user_id: str,
        role: str,
        options: AssignmentOptions,
    ) -> RoleAssignmentView | None:
        if not await self._roles.exists(role):
            if options.if_exists:
                return None
            raise RoleNotFoundError(role)

        scope = options.scope
        inherited = await self._closure.inherited_closure_of(role)
        assignment_id = await self._assignments.find_one(
            user_id=user_id,
            role_name=role,
            scope=scope,
        )
        if assignment_id is None:
            assignment_id = await self._assignments.insert(
                user_id=user_id,
                role_name=role,
                scope=scope,
            )
            event = "rbac.assignment.create.success"
        else:
            await self._assignments.overwrite(
                assignment_id,
                user_id=user_id,
                role_name=role,
                scope=scope,
            )
            event = "rbac.assignment.overwrite.success"
        await self._assignments.set_inherited_roles([assignment_id], inherited)

        logger.info(
            event,
            extra=log_context(
                user_id=user_id,
                role=role,
                scope=str(scope),
                assignment_id=str(assignment_id),
            ),
        )
        return RoleAssignmentView(
            id=assignment_id,
            user_id=user_id,
            role=role,
            scope=scope,
            inherited_roles=frozenset(inherited),
        )

    async def set_user_roles(
        self,
        users: str | Iterable[str],
        roles: str | Iterable[str],
        options: OptionsInput = None,
    ) -> list[RoleAssignmentView]:
        """Replace the principals' assignments (in the scope, or everywhere
        under ``any_scope``) with ``roles``."""

        user_ids = _as_list(users, kind="users")
        role_names = _as_list(roles, kind="roles")
        opts = normalize_options(options)
        for role in role_names:
            validate_role_name(role)

        scopes = None if opts.any_scope else (opts.scope,)
        granted: list[RoleAssignmentView] = []
        for user_id in user_ids:
            if not user_id:
                continue
            removed = await self._assignments.remove(user_id=user_id, scopes=scopes)
            logger.debug(
                "rbac.assignment.reset",
                extra=log_context(user_id=user_id, scope=str(opts.scope), removed=removed),
            )
            for role in role_names:
                assignment = await self._add_user_to_role(user_id, role, opts)
                if assignment is not None:
                    granted.append(assignment)
        return granted

    async def remove_users_from_roles(
        self,
        users: str | Iterable[str],
        roles: str | Iterable[str],
        options: OptionsInput = None,
    ) -> int:
        """Revoke ``roles`` from ``users``. Returns the number of assignments removed."""

        user_ids = _as_list(users, kind="users")
        role_names = _as_list(roles, kind="roles")
        opts = normalize_options(options)
        for role in role_names:
            validate_role_name(role)

        removed = 0
        for user_id in user_ids:
            if not user_id:
                continue
            for role in role_names:
                removed += await self._remove_user_from_role(user_id, role, opts)
        return removed

    async def _remove_user_from_role(
        self,
        user_id: str,
        role: str,
        options: AssignmentOptions,
    ) -> int:
        scope = options.exact_scope()
        removed = await self._assignments.remove(
            user_id=user_id,
            role_name=role,
            scopes=None if scope is None else (scope,),
        )
        logger.info(
            "rbac.assignment.delete.success",
            extra=log_context(
                user_id=user_id,
                role=role,
                scope="*" if scope is None else str(scope),
                removed=removed,
            ),
        )
        return removed

    async def rename_scope(self, old_name: str | None, new_name: str | None) -> int:
        """Move every assignment in ``old_name`` to ``new_name`` (``None`` is global)."""

        old = Scope.of(validate_scope_name(old_name))
        new = Scope.of(validate_scope_name(new_name))
        if old == new:
            return 0
        moved = await self._converge(
            lambda: self._assignments.rename_scope(old, new),
            operation="rename_scope",
        )
        logger.info(
            "rbac.scope.rename.success",
            extra=log_context(scope=str(new), previous=str(old), moved=moved),
        )
        return moved

    async def remove_scope(self, name: str | None) -> int:
        """Delete every assignment in scope ``name``."""

        scope = Scope.of(validate_scope_name(name))
        removed = await self._assignments.remove(scopes=(scope,))
        logger.info(
            "rbac.scope.delete.success",
            extra=log_context(scope=str(scope), removed=removed),
        )
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def user_is_in_role(
        self,
        user_id: str,
        roles: str | Iterable[str | None] | None,
        options: OptionsInput = None,
    ) -> bool:
        """Return whether ``user_id`` holds any of ``roles``, directly or inherited.

        Global assignments count in every scope unless ``any_scope`` is set.
        """

        if not isinstance(user_id, str) or not user_id or roles is None:
            return False
        role_names = [role for role in _as_list(roles, kind="roles") if role is not None]
        if not role_names:
            return False
        opts = normalize_options(options)
        return await self._assignments.exists(
            user_id=user_id,
            inherits_any=role_names,
            scopes=opts.scope_filter(honor_only_scoped=False),
        )

    async def get_roles_for_user(
        self,
        user_id: str,
        options: OptionsInput = None,
    ) -> set[str] | list[RoleAssignmentView]:
        """Roles held by ``user_id``.

        By default the union of every matching assignment's inherited roles;
        ``only_assigned`` limits it to directly assigned roles and
        ``full_objects`` returns the assignments themselves.
        """

        opts = normalize_options(options)
        if opts.full_objects:
            return await self.get_assignments_for_user(user_id, opts)
        if not user_id:
            return set()
        scopes = opts.scope_filter()
        if opts.only_assigned:
            return await self._assignments.assigned_role_names(user_id=user_id, scopes=scopes)
        return await self._assignments.inherited_role_names(user_id=user_id, scopes=scopes)

    async def get_assignments_for_user(
        self,
        user_id: str,
        options: OptionsInput = None,
    ) -> list[RoleAssignmentView]:
        if not user_id:
            return []
        opts = normalize_options(options)
        return await self._assignments.find(user_id=user_id, scopes=opts.scope_filter())

    async def get_users_in_role(
        self,
        roles: str | Iterable[str],
        options: OptionsInput = None,
    ) -> list[Any]:
        """Principals holding any of ``roles``.

        Principal ids are resolved through the configured
        :class:`PrincipalDirectory`; without one the ids are returned.
        """

        role_names = _as_list(roles, kind="roles")
        opts = normalize_options(options)
        user_ids = await self._assignments.distinct_user_ids(
            roles=role_names,
            scopes=opts.scope_filter(),
        )
        if self._principals is None or not user_ids:
            return user_ids
        return await self._principals.get_many(user_ids)

    async def get_user_assignments_for_role(
        self,
        roles: str | Iterable[str],
        options: OptionsInput = None,
    ) -> list[RoleAssignmentView]:
        role_names = _as_list(roles, kind="roles")
        opts = normalize_options(options)
        return await self._assignments.find(inherits_any=role_names, scopes=opts.scope_filter())

    async def get_scopes_for_user(
        self,
        user_id: str,
        roles: str | Iterable[str] | None = None,
    ) -> set[str]:
        """Named scopes in which ``user_id`` holds an assignment (of ``roles`` if given)."""

        if not user_id:
            return set()
        role_names = None if roles is None else _as_list(roles, kind="roles")
        return await self._assignments.distinct_scopes(user_id=user_id, roles=role_names)

    async def is_ancestor_of(self, parent: str | None, child: str | None) -> bool:
        return await self._closure.is_ancestor_of(parent, child)


__all__ = ["RbacService"]
