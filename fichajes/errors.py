"""Domain error taxonomy.

Services raise these; the application factory turns them into JSON
responses carrying ``status_code`` and the (Spanish) ``message``.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Invalid input or an operation not allowed in the current state."""

    status_code = 400


class AuthorizationError(DomainError):
    """The actor is authenticated but may not act on the target."""

    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """The target is already in a state that forbids the operation."""

    status_code = 409
