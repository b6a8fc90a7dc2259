"""Typed errors raised by the service lifecycle core.

Callers catch by type and read ``code`` for a machine-readable identifier:

    LifecycleError
     +-- ValidationError   caller input missing or malformed
     +-- NotFoundError     item missing or outside the caller's company
     +-- ConflictError     item not in the state the transition needs
     +-- PersistenceError  store failure; the transition was rolled back
"""

from __future__ import annotations

from typing import Any


class LifecycleError(Exception):
    code = "lifecycle_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LifecycleError):
    code = "validation_error"


class NotFoundError(LifecycleError):
    code = "not_found"

    def __init__(self, message: str = "Item not found", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ConflictError(LifecycleError):
    code = "conflict"


class PersistenceError(LifecycleError):
    """Infrastructure fault while committing a transition.

    Unlike the business errors above this one is never the caller's fault and
    is logged at ERROR by the manager before it is raised.
    """

    code = "internal_error"
