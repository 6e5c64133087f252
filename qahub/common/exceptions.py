"""
Error taxonomy shared by the store, the identity client and the service.

Every error carries the HTTP status the API layer answers with.
"""

from typing import Optional


class QAHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(QAHubError):
    """Raised when required fields are missing or malformed."""

    status_code = 400


class AuthenticationError(QAHubError):
    """Raised when no bearer credential is given or it is invalid."""

    status_code = 401


class AuthorizationError(QAHubError):
    """Raised when a valid identity lacks the admin capability."""

    status_code = 403


class NotFoundError(QAHubError):
    """Raised when a submission id does not resolve."""

    status_code = 404


class ConflictError(QAHubError):
    """Raised when reviewing a submission that was already reviewed."""

    status_code = 409


class StoreError(QAHubError):
    """Raised when the key-value store fails to read or persist."""

    status_code = 500


class IdentityProviderError(QAHubError):
    """Raised when the identity provider rejects or fails a request."""

    status_code = 502


class IdentityTimeoutError(IdentityProviderError):
    """Raised when an identity provider call exceeds its timeout."""

    status_code = 504
