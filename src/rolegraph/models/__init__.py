"""ORM models; importing this package registers every table on ``Base.metadata``."""

from .rbac import Role, RoleAssignment, RoleAssignmentInheritedRole, RoleChild

__all__ = [
    "Role",
    "RoleAssignment",
    "RoleAssignmentInheritedRole",
    "RoleChild",
]
