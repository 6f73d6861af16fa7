"""
Domain errors raised by the service layer and mapped to HTTP responses.
"""

from __future__ import annotations


class AuraError(Exception):
    """Base class for errors scoped to a single user interaction."""

    status_code = 400


class ValidationError(AuraError):
    """Raised when user input fails validation."""

    status_code = 400


class AuthenticationError(AuraError):
    """Raised when credentials or session tokens are missing or invalid."""

    status_code = 401


class PermissionDeniedError(AuraError):
    """Raised when the acting user may not perform the operation."""

    status_code = 403


class NotFoundError(AuraError):
    """Raised when a referenced document does not exist."""

    status_code = 404


class ConflictError(AuraError):
    """Raised when a uniqueness constraint is violated."""

    status_code = 409


class TransactionConflictError(ConflictError):
    """Raised when a transaction keeps conflicting after all retries."""


class StorageError(AuraError):
    """Raised when an object storage upload fails."""

    status_code = 502
