"""Client-side error taxonomy.

Every failure that crosses the remote resource boundary is normalized into one
of the ``AppError`` subclasses below. ``retryable`` tells background activity
(polling, revalidation) whether trying again later makes sense.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories every remote operation maps into."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    NETWORK = "NETWORK"
    SERVER_FAULT = "SERVER_FAULT"


class AppError(Exception):
    """Base exception for client errors."""

    kind: ErrorKind = ErrorKind.SERVER_FAULT
    retryable: bool = False

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code or self.kind.value
        super().__init__(message)


class NetworkError(AppError):
    """Raised when the remote service cannot be reached or does not answer in time."""

    kind = ErrorKind.NETWORK
    retryable = True

    def __init__(self, message: str = "Network unavailable"):
        super().__init__(message)


class ValidationError(AppError):
    """Raised when input validation fails (locally or on the server)."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field_errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.field_errors = field_errors or {}


class NotFoundError(AppError):
    """Raised when a requested resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class AuthError(AppError):
    """Raised when the session is no longer authenticated.

    Never absorbed by background activity: it ends the session.
    """

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = "Session is not authenticated"):
        super().__init__(message)


class ServerFault(AppError):
    """Raised when the remote service fails while handling a request."""

    kind = ErrorKind.SERVER_FAULT
    retryable = True

    def __init__(self, message: str = "Server error", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
