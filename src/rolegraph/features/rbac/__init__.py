"""Role graph mutations, assignments, and membership queries."""

from .closure import RoleClosure
from .convergence import converge
from .repository import AssignmentsRepository, RolesRepository
from .service import RbacService

__all__ = [
    "AssignmentsRepository",
    "RbacService",
    "RoleClosure",
    "RolesRepository",
    "converge",
]
