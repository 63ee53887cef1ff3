"""Client exceptions."""
from typing import Any, Optional


class LibSyncError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class NetworkError(LibSyncError):
    """No response reached the client (connection refused, DNS, timeout)."""

    def __init__(self, message: str = "Network error. Please check your connection and server status.") -> None:
        super().__init__(message)


class ServerError(LibSyncError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Server Error ({status_code}): {message}")
        self.status_code = status_code
        self.server_message = message


class InvalidCredentials(LibSyncError):
    """Login was rejected by the backend."""

    def __init__(self, message: str = "Invalid credentials", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RegistrationRejected(InvalidCredentials):
    """Registration was rejected (duplicate email or student ID, missing fields)."""


class SessionExpired(LibSyncError):
    """A 401 was observed; the session has already been cleared."""

    def __init__(self, message: str = "Session expired. Please login again.") -> None:
        super().__init__(message)


class AccessDenied(LibSyncError):
    """A 403 was observed; the session is left intact."""

    def __init__(self, message: str = "Access denied. Please check your permissions.") -> None:
        super().__init__(message)


class NotAuthenticated(LibSyncError):
    """An operation that needs a session was attempted without one."""

    def __init__(self, message: str = "User not logged in") -> None:
        super().__init__(message)


class PermissionDenied(LibSyncError):
    """The OS notification permission was declined."""

    def __init__(self, message: str = "Notification permissions were denied") -> None:
        super().__init__(message)


class ConfigurationError(LibSyncError):
    """A manually entered server address is malformed."""


__all__ = [
    "LibSyncError",
    "NetworkError",
    "ServerError",
    "InvalidCredentials",
    "RegistrationRejected",
    "SessionExpired",
    "AccessDenied",
    "NotAuthenticated",
    "PermissionDenied",
    "ConfigurationError",
]
