"""Pydantic schemas for backend request/response payloads."""
from .auth import (
    LoginRequest,
    RegisterProfile,
    AuthResponse,
    UserIdentity,
)
from .push import (
    PushTokenRequest,
    PushTokenResponse,
)

__all__ = [
    "LoginRequest",
    "RegisterProfile",
    "AuthResponse",
    "UserIdentity",
    "PushTokenRequest",
    "PushTokenResponse",
]
