"""Core utilities and shared functionality."""

from dashsync.core.timezone import (
    now_utc,
    to_utc,
    parse_datetime_utc,
    parse_date,
    UTC_TZ,
)
from dashsync.core.exceptions import (
    ErrorKind,
    AppError,
    NetworkError,
    ValidationError,
    NotFoundError,
    AuthError,
    ServerFault,
)

__all__ = [
    "now_utc",
    "to_utc",
    "parse_datetime_utc",
    "parse_date",
    "UTC_TZ",
    "ErrorKind",
    "AppError",
    "NetworkError",
    "ValidationError",
    "NotFoundError",
    "AuthError",
    "ServerFault",
]
