"""Push provider interface - the platform's notification service.

The host application supplies an implementation backed by the OS push SDK.
The lifecycle manager only ever talks to this interface.
"""
from enum import Enum
from typing import Optional, Protocol


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class PushProvider(Protocol):
    """What the push token lifecycle needs from the platform."""

    # Tag sent to the backend with the token (android, ios)
    platform: str

    def is_physical_device(self) -> bool:
        """False on emulators and simulators, which cannot receive push."""
        ...

    async def get_permission_status(self) -> PermissionStatus:
        """Current notification permission, without prompting."""
        ...

    async def request_permission(self) -> PermissionStatus:
        """Show the OS permission prompt and return the user's answer."""
        ...

    async def get_push_token(self) -> Optional[str]:
        """Fetch this installation's token from the push service."""
        ...


class UnsupportedPushProvider:
    """Provider for hosts without a push service (emulators, headless runs)."""

    def __init__(self, platform: str = "android"):
        self.platform = platform

    def is_physical_device(self) -> bool:
        return False

    async def get_permission_status(self) -> PermissionStatus:
        return PermissionStatus.UNDETERMINED

    async def request_permission(self) -> PermissionStatus:
        return PermissionStatus.DENIED

    async def get_push_token(self) -> Optional[str]:
        return None
