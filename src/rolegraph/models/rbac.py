"""Role graph and assignment models."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rolegraph.db import Base
from rolegraph.db.mixins import TimestampMixin, UUIDPrimaryKeyMixin


ROLE_NAME_LENGTH = 255
SCOPE_NAME_LENGTH = 255
PRINCIPAL_ID_LENGTH = 255


class Role(TimestampMixin, Base):
    """A named node of the role DAG; the name is the identifier."""

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(ROLE_NAME_LENGTH), primary_key=True)


class RoleChild(Base):
    """Directed edge ``parent -> child`` of the role DAG."""

    __tablename__ = "role_children"

    parent_name: Mapped[str] = mapped_column(
        String(ROLE_NAME_LENGTH),
        ForeignKey("roles.name", ondelete="CASCADE"),
        primary_key=True,
    )
    # No foreign key: a dangling child reference is tolerated by traversal.
    child_name: Mapped[str] = mapped_column(String(ROLE_NAME_LENGTH), primary_key=True)

    __table_args__ = (Index("ix_role_children_child_name", "child_name"),)


class RoleAssignment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Grant of a role to a principal, optionally within a named scope."""

    __tablename__ = "role_assignments"

    user_id: Mapped[str] = mapped_column(String(PRINCIPAL_ID_LENGTH), nullable=False)
    role_name: Mapped[str] = mapped_column(String(ROLE_NAME_LENGTH), nullable=False)
    # NULL is the global scope.
    scope: Mapped[str | None] = mapped_column(String(SCOPE_NAME_LENGTH), nullable=True)

    __table_args__ = (
        Index("ix_role_assignments_user_scope", "user_id", "scope"),
        Index("ix_role_assignments_role_name", "role_name"),
        Index("ix_role_assignments_scope", "scope"),
    )


class RoleAssignmentInheritedRole(Base):
    """One element of an assignment's denormalized inherited-role closure."""

    __tablename__ = "role_assignment_inherited_roles"

    assignment_id: Mapped[UUID] = mapped_column(
        Uuid(),
        ForeignKey("role_assignments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_name: Mapped[str] = mapped_column(String(ROLE_NAME_LENGTH), primary_key=True)

    __table_args__ = (Index("ix_role_assignment_inherited_roles_role_name", "role_name"),)


__all__ = [
    "Role",
    "RoleAssignment",
    "RoleAssignmentInheritedRole",
    "RoleChild",
]
