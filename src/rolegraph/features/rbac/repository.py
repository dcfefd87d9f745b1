"""Persistence helpers for the role graph and its assignments.

Both repositories expose the narrow document-store capability the RBAC
service is written against: point lookups, filtered multi-row reads, inserts,
and filtered updates/removes that report how many records they touched.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import ColumnElement, delete, exists, false, insert, literal, or_, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from rolegraph.core.rbac.errors import RoleAlreadyExistsError
from rolegraph.core.rbac.types import RoleAssignmentView, RoleView, Scope
from rolegraph.db.mixins import generate_uuid7, utc_now
from rolegraph.models import Role, RoleAssignment, RoleAssignmentInheritedRole, RoleChild

_BULK = {"synchronize_session": False}


def _scope_clause(scopes: Sequence[Scope] | None) -> ColumnElement[bool]:
    """Match assignments carrying one of ``scopes``; ``None`` matches every scope."""

    if scopes is None:
        return true()
    clauses: list[ColumnElement[bool]] = []
    if any(scope.is_global for scope in scopes):
        clauses.append(RoleAssignment.scope.is_(None))
    names = [scope.name for scope in scopes if not scope.is_global]
    if names:
        clauses.append(RoleAssignment.scope.in_(names))
    if not clauses:
        return false()
    return or_(*clauses)


def _inherits_any(roles: Iterable[str]) -> ColumnElement[bool]:
    return RoleAssignment.id.in_(
        select(RoleAssignmentInheritedRole.assignment_id).where(
            RoleAssignmentInheritedRole.role_name.in_(list(roles))
        )
    )


class RolesRepository:
    """Query helpers for the role DAG (``roles`` + ``role_children``)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def exists(self, name: str) -> bool:
        stmt = select(Role.name).where(Role.name == name).limit(1)
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def list_roles(self) -> list[RoleView]:
        names = (await self._session.execute(select(Role.name).order_by(Role.name))).scalars()
        edges = await self._session.execute(
            select(RoleChild.parent_name, RoleChild.child_name).order_by(
                RoleChild.parent_name, RoleChild.child_name
            )
        )
        children: dict[str, list[str]] = {}
        for parent_name, child_name in edges:
            children.setdefault(parent_name, []).append(child_name)
        return [RoleView(name=name, children=tuple(children.get(name, ()))) for name in names]

    async def child_names(self, name: str) -> list[str]:
        """Direct children of ``name`` as stored, including dangling references."""

        stmt = (
            select(RoleChild.child_name)
            .where(RoleChild.parent_name == name)
            .order_by(RoleChild.child_name)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def find_child_names(self, parents: Iterable[str]) -> set[str]:
        """Existing roles listed as a direct child of any of ``parents``."""

        stmt = (
            select(RoleChild.child_name)
            .join(Role, Role.name == RoleChild.child_name)
            .where(RoleChild.parent_name.in_(list(parents)))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars())

    async def find_parent_names(self, children: Iterable[str]) -> set[str]:
        """Roles whose children include any of ``children``."""

        stmt = (
            select(RoleChild.parent_name)
            .where(RoleChild.child_name.in_(list(children)))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars())

    async def insert(self, name: str, *, children: Iterable[str] = ()) -> str:
        if await self.exists(name):
            raise RoleAlreadyExistsError(name)
        now = utc_now()
        try:
            await self._session.execute(
                insert(Role).values(name=name, created_at=now, updated_at=now)
            )
        except IntegrityError as exc:
            raise RoleAlreadyExistsError(name) from exc

        rows = [{"parent_name": name, "child_name": child} for child in dict.fromkeys(children)]
        if rows:
            await self._session.execute(insert(RoleChild.__table__), rows)
        return name

    async def add_child(self, parent: str, child: str) -> int:
        """Add the edge only when ``parent`` exists and does not list ``child`` yet."""

        already_child = exists().where(
            RoleChild.parent_name == parent,
            RoleChild.child_name == child,
        )
        stmt = insert(RoleChild.__table__).from_select(
            ["parent_name", "child_name"],
            select(Role.name, literal(child)).where(Role.name == parent, ~already_child),
        )
        try:
            result = await self._session.execute(stmt)
        except IntegrityError:
            # A concurrent writer added the same edge first.
            return 0
        return result.rowcount or 0

    async def remove_child(self, parent: str, child: str) -> int:
        stmt = (
            delete(RoleChild)
            .where(RoleChild.parent_name == parent, RoleChild.child_name == child)
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def rename_child_references(self, old: str, new: str) -> int:
        """Point edges at ``new``; parents already listing ``new`` just drop ``old``."""

        listed = aliased(RoleChild)
        await self._session.execute(
            delete(RoleChild)
            .where(
                RoleChild.child_name == old,
                exists().where(
                    listed.parent_name == RoleChild.parent_name,
                    listed.child_name == new,
                ),
            )
            .execution_options(**_BULK)
        )
        stmt = (
            update(RoleChild)
            .where(RoleChild.child_name == old)
            .values(child_name=new)
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, name: str) -> int:
        await self._session.execute(
            delete(RoleChild).where(RoleChild.parent_name == name).execution_options(**_BULK)
        )
        result = await self._session.execute(
            delete(Role).where(Role.name == name).execution_options(**_BULK)
        )
        return result.rowcount or 0


class AssignmentsRepository:
    """Query helpers for ``role_assignments`` and their inherited-role rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------- reads -----------------

    def _select_ids(
        self,
        *,
        user_id: str | None = None,
        role_name: str | None = None,
        inherits_any: Iterable[str] | None = None,
        scopes: Sequence[Scope] | None = None,
        named_scopes_only: bool = False,
    ):
        stmt = select(RoleAssignment.id).where(_scope_clause(scopes))
        if user_id is not None:
            stmt = stmt.where(RoleAssignment.user_id == user_id)
        if role_name is not None:
            stmt = stmt.where(RoleAssignment.role_name == role_name)
        if inherits_any is not None:
            stmt = stmt.where(_inherits_any(inherits_any))
        if named_scopes_only:
            stmt = stmt.where(RoleAssignment.scope.is_not(None))
        return stmt

    async def find_ids(self, **filters) -> list[UUID]:
        result = await self._session.execute(self._select_ids(**filters))
        return list(result.scalars())

    async def exists(self, **filters) -> bool:
        result = await self._session.execute(self._select_ids(**filters).limit(1))
        return result.first() is not None

    async def find(self, **filters) -> list[RoleAssignmentView]:
        stmt = (
            select(
                RoleAssignment.id,
                RoleAssignment.user_id,
                RoleAssignment.role_name,
                RoleAssignment.scope,
            )
            .where(RoleAssignment.id.in_(self._select_ids(**filters)))
            .order_by(RoleAssignment.id)
        )
        rows = (await self._session.execute(stmt)).all()
        inherited = await self.inherited_roles_by_assignment([row.id for row in rows])
        return [
            RoleAssignmentView(
                id=row.id,
                user_id=row.user_id,
                role=row.role_name,
                scope=Scope.of(row.scope),
                inherited_roles=frozenset(inherited.get(row.id, ())),
            )
            for row in rows
        ]

    async def find_one(self, *, user_id: str, role_name: str, scope: Scope) -> UUID | None:
        stmt = (
            self._select_ids(user_id=user_id, role_name=role_name, scopes=(scope,))
            .order_by(RoleAssignment.id)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def inherited_roles_by_assignment(
        self, assignment_ids: Sequence[UUID]
    ) -> dict[UUID, set[str]]:
        if not assignment_ids:
            return {}
        stmt = select(
            RoleAssignmentInheritedRole.assignment_id,
            RoleAssignmentInheritedRole.role_name,
        ).where(RoleAssignmentInheritedRole.assignment_id.in_(list(assignment_ids)))
        mapping: dict[UUID, set[str]] = {}
        for assignment_id, role_name in await self._session.execute(stmt):
            mapping.setdefault(assignment_id, set()).add(role_name)
        return mapping

    async def assigned_role_names(
        self, *, user_id: str, scopes: Sequence[Scope] | None
    ) -> set[str]:
        stmt = (
            select(RoleAssignment.role_name)
            .where(RoleAssignment.user_id == user_id, _scope_clause(scopes))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars())

    async def inherited_role_names(
        self, *, user_id: str, scopes: Sequence[Scope] | None
    ) -> set[str]:
        stmt = (
            select(RoleAssignmentInheritedRole.role_name)
            .where(
                RoleAssignmentInheritedRole.assignment_id.in_(
                    self._select_ids(user_id=user_id, scopes=scopes)
                )
            )
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars())

    async def distinct_user_ids(
        self, *, roles: Iterable[str], scopes: Sequence[Scope] | None
    ) -> list[str]:
        stmt = (
            select(RoleAssignment.user_id)
            .where(RoleAssignment.id.in_(self._select_ids(inherits_any=roles, scopes=scopes)))
            .distinct()
            .order_by(RoleAssignment.user_id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars())

    async def distinct_scopes(
        self, *, user_id: str, roles: Iterable[str] | None = None
    ) -> set[str]:
        stmt = (
            select(RoleAssignment.scope)
            .where(
                RoleAssignment.id.in_(
                    self._select_ids(
                        user_id=user_id,
                        inherits_any=roles,
                        named_scopes_only=True,
                    )
                )
            )
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars())

    # ------------- writes -----------------

    async def insert(self, *, user_id: str, role_name: str, scope: Scope) -> UUID:
        assignment_id = generate_uuid7()
        now = utc_now()
        await self._session.execute(
            insert(RoleAssignment).values(
                id=assignment_id,
                user_id=user_id,
                role_name=role_name,
                scope=scope.name,
                created_at=now,
                updated_at=now,
            )
        )
        return assignment_id

    async def overwrite(
        self, assignment_id: UUID, *, user_id: str, role_name: str, scope: Scope
    ) -> int:
        stmt = (
            update(RoleAssignment)
            .where(RoleAssignment.id == assignment_id)
            .values(user_id=user_id, role_name=role_name, scope=scope.name, updated_at=utc_now())
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def set_inherited_roles(
        self, assignment_ids: Sequence[UUID], roles: Iterable[str]
    ) -> None:
        """Replace the inherited-role rows of every assignment in ``assignment_ids``."""

        if not assignment_ids:
            return
        role_names = list(dict.fromkeys(roles))
        await self._session.execute(
            delete(RoleAssignmentInheritedRole)
            .where(RoleAssignmentInheritedRole.assignment_id.in_(list(assignment_ids)))
            .execution_options(**_BULK)
        )
        rows = [
            {"assignment_id": assignment_id, "role_name": role_name}
            for assignment_id in assignment_ids
            for role_name in role_names
        ]
        if rows:
            await self._session.execute(insert(RoleAssignmentInheritedRole.__table__), rows)

    async def replace_inherited_roles(
        self,
        *,
        role_name: str,
        roles: Iterable[str],
        containing: str | None = None,
    ) -> int:
        """Reset the closure of assignments of ``role_name`` (optionally only those
        whose closure still lists ``containing``). Returns the number rewritten."""

        assignment_ids = await self.find_ids(
            role_name=role_name,
            inherits_any=None if containing is None else (containing,),
        )
        await self.set_inherited_roles(assignment_ids, roles)
        return len(assignment_ids)

    async def extend_inherited_roles(self, *, containing: str, roles: Iterable[str]) -> int:
        """Union ``roles`` into every closure that lists ``containing``.

        Returns the number of assignments that gained at least one role.
        """

        assignment_ids = await self.find_ids(inherits_any=(containing,))
        if not assignment_ids:
            return 0
        role_names = list(dict.fromkeys(roles))
        present = await self.inherited_roles_by_assignment(assignment_ids)
        rows = [
            {"assignment_id": assignment_id, "role_name": role_name}
            for assignment_id in assignment_ids
            for role_name in role_names
            if role_name not in present.get(assignment_id, ())
        ]
        if rows:
            await self._session.execute(insert(RoleAssignmentInheritedRole.__table__), rows)
        return len({row["assignment_id"] for row in rows})

    async def rename_role(self, old: str, new: str) -> int:
        stmt = (
            update(RoleAssignment)
            .where(RoleAssignment.role_name == old)
            .values(role_name=new, updated_at=utc_now())
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def rename_inherited_role(self, old: str, new: str) -> int:
        held = aliased(RoleAssignmentInheritedRole)
        await self._session.execute(
            delete(RoleAssignmentInheritedRole)
            .where(
                RoleAssignmentInheritedRole.role_name == old,
                exists().where(
                    held.assignment_id == RoleAssignmentInheritedRole.assignment_id,
                    held.role_name == new,
                ),
            )
            .execution_options(**_BULK)
        )
        stmt = (
            update(RoleAssignmentInheritedRole)
            .where(RoleAssignmentInheritedRole.role_name == old)
            .values(role_name=new)
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def rename_scope(self, old: Scope, new: Scope) -> int:
        stmt = (
            update(RoleAssignment)
            .where(_scope_clause((old,)))
            .values(scope=new.name, updated_at=utc_now())
            .execution_options(**_BULK)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def remove(
        self,
        *,
        user_id: str | None = None,
        role_name: str | None = None,
        scopes: Sequence[Scope] | None = None,
    ) -> int:
        """Delete matching assignments with their inherited-role rows."""

        assignment_ids = await self.find_ids(user_id=user_id, role_name=role_name, scopes=scopes)
        if not assignment_ids:
            return 0
        await self._session.execute(
            delete(RoleAssignmentInheritedRole)
            .where(RoleAssignmentInheritedRole.assignment_id.in_(assignment_ids))
            .execution_options(**_BULK)
        )
        result = await self._session.execute(
            delete(RoleAssignment)
            .where(RoleAssignment.id.in_(assignment_ids))
            .execution_options(**_BULK)
        )
        return result.rowcount or 0


__all__ = ["AssignmentsRepository", "RolesRepository"]
