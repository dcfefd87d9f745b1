"""RBAC error taxonomy shared by the graph, assignment, and query operations."""

from __future__ import annotations


class RbacError(ValueError):
    """Base class for role graph and assignment errors."""


class InvalidNameError(RbacError):
    """Raised when a role or scope name is malformed."""

    def __init__(self, kind: str, value: object) -> None:
        self.kind = kind
        self.value = value
        super().__init__(f"Invalid {kind} name '{value}'.")


class RoleNotFoundError(RbacError):
    """Raised when a referenced role does not exist."""

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role '{role}' does not exist.")


class RoleAlreadyExistsError(RbacError):
    """Raised when creating (or renaming onto) a role name that is taken."""

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__(f"Role '{role}' already exists.")


class RoleCycleError(RbacError):
    """Raised when a parent edge would make a role reachable from itself."""

    def __init__(self, role: str, parent: str) -> None:
        self.role = role
        self.parent = parent
        super().__init__(f"Roles '{role}' and '{parent}' would form a cycle.")


class ConvergenceError(RuntimeError):
    """Raised when a converge loop keeps matching past its iteration cap."""

    def __init__(self, operation: str, max_iterations: int) -> None:
        self.operation = operation
        self.max_iterations = max_iterations
        super().__init__(
            f"'{operation}' still matched records after {max_iterations} iterations"
        )


__all__ = [
    "ConvergenceError",
    "InvalidNameError",
    "RbacError",
    "RoleAlreadyExistsError",
    "RoleCycleError",
    "RoleNotFoundError",
]
