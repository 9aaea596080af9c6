"""Errors raised by the closing ledger.

Only I/O-adjacent operations (save, edit, delete, authorize) raise. The
reconciliation arithmetic is total and never fails.
"""

from typing import Any


class ClosingError(Exception):
    """Base exception for closing ledger errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class ValidationError(ClosingError):
    """A closing was submitted with nothing to save."""

    pass


class AuthorizationError(ClosingError):
    """The edit/delete gate denied the request."""

    pass


class PersistenceError(ClosingError):
    """The backing store rejected a read, write or delete."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status_code = status_code


class RecordNotFoundError(PersistenceError):
    """The targeted closing does not exist in the store."""

    pass
