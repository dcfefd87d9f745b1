"""Role graph, assignments, and the denormalized inherited-role index.

Assignment ids are UUIDv7 values generated in the application layer using
:func:`rolegraph.db.mixins.generate_uuid7`.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from alembic import op

from rolegraph.db.types import UTCDateTime

# Revision identifiers, used by Alembic.
revision = "0001_role_graph"
down_revision: Optional[str] = None
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "roles",
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("name", name="roles_pkey"),
    )

    op.create_table(
        "role_children",
        sa.Column("parent_name", sa.String(length=255), nullable=False),
        sa.Column("child_name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["parent_name"],
            ["roles.name"],
            name="role_children_parent_name_fkey",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("parent_name", "child_name", name="role_children_pkey"),
    )
    op.create_index("ix_role_children_child_name", "role_children", ["child_name"])

    op.create_table(
        "role_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("role_name", sa.String(length=255), nullable=False),
        sa.Column("scope", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="role_assignments_pkey"),
    )
    op.create_index(
        "ix_role_assignments_user_scope", "role_assignments", ["user_id", "scope"]
    )
    op.create_index("ix_role_assignments_role_name", "role_assignments", ["role_name"])
    op.create_index("ix_role_assignments_scope", "role_assignments", ["scope"])

    op.create_table(
        "role_assignment_inherited_roles",
        sa.Column("assignment_id", sa.Uuid(), nullable=False),
        sa.Column("role_name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["assignment_id"],
            ["role_assignments.id"],
            name="role_assignment_inherited_roles_assignment_id_fkey",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint(
            "assignment_id", "role_name", name="role_assignment_inherited_roles_pkey"
        ),
    )
    op.create_index(
        "ix_role_assignment_inherited_roles_role_name",
        "role_assignment_inherited_roles",
        ["role_name"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_role_assignment_inherited_roles_role_name",
        table_name="role_assignment_inherited_roles",
    )
    op.drop_table("role_assignment_inherited_roles")
    op.drop_index("ix_role_assignments_scope", table_name="role_assignments")
    op.drop_index("ix_role_assignments_role_name", table_name="role_assignments")
    op.drop_index("ix_role_assignments_user_scope", table_name="role_assignments")
    op.drop_table("role_assignments")
    op.drop_index("ix_role_children_child_name", table_name="role_children")
    op.drop_table("role_children")
    op.drop_table("roles")
