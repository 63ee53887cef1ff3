"""Push token lifecycle - acquire, persist and sync this device's push token.

States:
    NO_TOKEN  --OS registration-->  LOCAL_TOKEN  --server ack-->  SYNCED_TOKEN

The permission prompt is shown at most once per run and never when a token
is already stored. Sync failures keep the local token so the next login or
app start can send it again; the backend treats repeats as updates.
"""
import logging
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from ..exceptions import (
    AccessDenied,
    NetworkError,
    NotAuthenticated,
    PermissionDenied,
    ServerError,
)
from ..schemas.push import PushTokenRequest, PushTokenResponse
from .local_store import LocalStore, PushRegistration
from .pipeline import RequestPipeline
from .push_provider import PermissionStatus, PushProvider
from .session_manager import Session, SessionManager

logger = logging.getLogger(__name__)

PUSH_TOKEN_PATH = "/users/push-token"


class PushTokenState(str, Enum):
    NO_TOKEN = "no_token"
    LOCAL_TOKEN = "local_token"
    SYNCED_TOKEN = "synced_token"


def _preview(token: str) -> str:
    return f"{token[:16]}..."


class PushTokenManager:
    """Owns the single PushRegistration of this installation."""

    def __init__(
        self,
        store: LocalStore,
        sessions: SessionManager,
        api: RequestPipeline,
        provider: PushProvider,
    ):
        self._store = store
        self._sessions = sessions
        self._api = api
        self._provider = provider
        self._registration: Optional[PushRegistration] = None
        self._loaded = False
        self._permission_declined = False

    @property
    def state(self) -> PushTokenState:
        if self._registration is None:
            return PushTokenState.NO_TOKEN
        if self._registration.synced:
            return PushTokenState.SYNCED_TOKEN
        return PushTokenState.LOCAL_TOKEN

    @property
    def permission_declined(self) -> bool:
        return self._permission_declined

    def current_registration(self) -> Optional[PushRegistration]:
        return self._registration

    async def load(self) -> Optional[PushRegistration]:
        """Read the persisted registration into memory."""
        self._registration = await self._store.load_push_registration()
        self._loaded = True
        return self._registration

    async def _ensure_loaded(self):
        if not self._loaded:
            await self.load()

    async def persist_locally(self, token: str) -> PushRegistration:
        """Durably store `token` for this installation."""
        self._registration = await self._store.save_push_token(token, self._provider.platform)
        self._loaded = True
        logger.info(f"Push token saved locally: {_preview(token)}")
        return self._registration

    async def detect_revocation(self) -> bool:
        """Drop the stored token if notifications were turned off in system settings.

        Reads the permission status only; never prompts. Returns True when the
        registration was dropped.
        """
        await self._ensure_loaded()
        if self._registration is None or not self._provider.is_physical_device():
            return False
        try:
            status = await self._provider.get_permission_status()
        except Exception as e:
            logger.error(f"Could not read notification permission: {e}")
            return False
        if status != PermissionStatus.DENIED:
            return False

        logger.warning("Notification permission was revoked, dropping stored push token")
        await self._store.clear_push_registration()
        self._registration = None
        return True

    async def ensure_registered(self) -> Optional[PushRegistration]:
        """Make sure this installation has a push token.

        Returns the registration, or None when push is unavailable (emulator,
        provider failure).

        Raises:
            PermissionDenied: the user declined notifications (now or earlier
                in this run); the prompt is not shown again this run
        """
        await self._ensure_loaded()
        if self._registration is not None:
            logger.debug(f"Push token already registered: {_preview(self._registration.device_token)}")
            return self._registration

        if self._permission_declined:
            raise PermissionDenied()

        if not self._provider.is_physical_device():
            logger.info("Push notifications require a physical device, skipping registration")
            return None

        try:
            status = await self._provider.get_permission_status()
            if status != PermissionStatus.GRANTED:
                status = await self._provider.request_permission()
        except Exception as e:
            logger.error(f"Error requesting notification permission: {e}")
            return None

        if status != PermissionStatus.GRANTED:
            self._permission_declined = True
            logger.warning("Notification permissions denied - continuing without push notifications")
            raise PermissionDenied()

        try:
            token = await self._provider.get_push_token()
        except Exception as e:
            logger.error(f"Error registering for push notifications: {e}")
            return None

        if not token:
            logger.warning("Push service returned no token")
            return None

        return await self.persist_locally(token)

    async def sync_with_server(self, token: Optional[str] = None) -> bool:
        """Send the token to the backend under the current session.

        Returns True when the backend acknowledged it, False on a network or
        server failure (the local token is kept for a later retry).

        Raises:
            NotAuthenticated: there is no session; retry after login
            SessionExpired: the backend rejected the session (now cleared)
        """
        if not self._sessions.is_authenticated():
            logger.info("Cannot send push token to server: user not logged in")
            raise NotAuthenticated()

        await self._ensure_loaded()
        if token is None:
            if self._registration is None:
                logger.debug("No push token to sync")
                return False
            token = self._registration.device_token

        body = PushTokenRequest(push_token=token, platform=self._provider.platform)
        try:
            data = await self._api.post(PUSH_TOKEN_PATH, json=body.model_dump(by_alias=True))
        except (NetworkError, ServerError, AccessDenied) as e:
            logger.error(f"Failed to send push token to server: {e.message}")
            return False

        try:
            ack = PushTokenResponse.model_validate(data or {})
        except ValidationError as e:
            logger.error(f"Unexpected push token response from server: {e.error_count()} errors")
            return False

        if not ack.success:
            logger.error(f"Server did not accept push token: {ack.message or 'no reason given'}")
            return False

        updated = await self._store.set_push_synced(token, True)
        if updated is not None:
            self._registration = updated
        logger.info(f"Push token sent to server: {_preview(token)}")
        return True

    async def sync_if_needed(self) -> bool:
        """App-start hook: resend a stored token the server has not acknowledged."""
        await self._ensure_loaded()
        if self._registration is None or self._registration.synced:
            return False
        if not self._sessions.is_authenticated():
            return False
        return await self.sync_with_server(self._registration.device_token)

    async def sync_after_login(self, session: Session) -> bool:
        """Post-login hook: the backend stores tokens per user, so always resend."""
        await self._ensure_loaded()
        if self._registration is None:
            return False
        return await self.sync_with_server(self._registration.device_token)

    async def register_and_sync(self) -> PushTokenState:
        """Deferred task: obtain a token if needed, then send it.

        Failures here never reach the primary flow; they are logged and the
        resulting state is returned.
        """
        try:
            registration = await self.ensure_registered()
        except PermissionDenied:
            logger.info("Push registration skipped: permission denied")
            return self.state

        if registration is None:
            return self.state

        if registration.synced and self._sessions.is_authenticated():
            return self.state

        try:
            await self.sync_with_server(registration.device_token)
        except NotAuthenticated:
            logger.info("Push token will be sent after the user logs in")
        except Exception as e:
            logger.error(f"Push token sync failed: {e}")
        return self.state
