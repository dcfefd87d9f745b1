"""RBAC domain types, validators, and errors."""

from .errors import (
    ConvergenceError,
    InvalidNameError,
    RbacError,
    RoleAlreadyExistsError,
    RoleCycleError,
    RoleNotFoundError,
)
from .types import GLOBAL_SCOPE, AssignmentOptions, OptionsInput, Scope, normalize_options
from .validators import validate_role_name, validate_scope_name

__all__ = [
    "GLOBAL_SCOPE",
    "AssignmentOptions",
    "ConvergenceError",
    "InvalidNameError",
    "OptionsInput",
    "RbacError",
    "RoleAlreadyExistsError",
    "RoleCycleError",
    "RoleNotFoundError",
    "Scope",
    "normalize_options",
    "validate_role_name",
    "validate_scope_name",
]
