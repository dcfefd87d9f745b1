"""Role graph RBAC engine with a denormalized inheritance index."""

from rolegraph.core.rbac.errors import (
    ConvergenceError,
    InvalidNameError,
    RbacError,
    RoleAlreadyExistsError,
    RoleCycleError,
    RoleNotFoundError,
)
from rolegraph.core.rbac.types import GLOBAL_SCOPE, AssignmentOptions, Scope, normalize_options
from rolegraph.features.rbac.service import RbacService

__version__ = "0.1.0"

__all__ = [
    "GLOBAL_SCOPE",
    "AssignmentOptions",
    "ConvergenceError",
    "InvalidNameError",
    "RbacError",
    "RbacService",
    "RoleAlreadyExistsError",
    "RoleCycleError",
    "RoleNotFoundError",
    "Scope",
    "normalize_options",
]
