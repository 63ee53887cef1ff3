"""Client context - constructs and wires the connectivity layer once.

Everything that used to be module-level state (current endpoint, current
session, push registration) lives on a ClientContext instance, so several
isolated contexts can run side by side.
"""
import logging
from typing import Optional

import httpx

from .config import Settings, settings as default_settings
from .services.discovery import ServerDiscoveryService
from .services.local_store import LocalStore
from .services.pipeline import RequestPipeline, build_authenticated_chain, build_public_chain
from .services.push_provider import PushProvider, UnsupportedPushProvider
from .services.push_tokens import PushTokenManager
from .services.scheduler import SchedulerService
from .services.session_manager import Session, SessionManager

logger = logging.getLogger(__name__)

PUSH_REGISTRATION_JOB_ID = "push_registration"


class ClientContext:
    """One client installation: storage, discovery, session, API and push."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        push_provider: Optional[PushProvider] = None,
        store: Optional[LocalStore] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or default_settings
        self.store = store or LocalStore.from_settings(self.config)
        self._owns_store = store is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_seconds),
            follow_redirects=True,
        )
        self._owns_client = client is None

        self.discovery = ServerDiscoveryService(self.store, self.client, self.config)
        self.public_api = RequestPipeline(
            self.client,
            self.discovery,
            build_public_chain(),
            api_prefix=self.config.api_prefix,
        )
        self.sessions = SessionManager(self.store, self.public_api)
        self.api = RequestPipeline(
            self.client,
            self.discovery,
            build_authenticated_chain(self.sessions),
            api_prefix=self.config.api_prefix,
        )
        self.push = PushTokenManager(
            self.store,
            self.sessions,
            self.api,
            push_provider or UnsupportedPushProvider(self.config.push_platform),
        )
        self.scheduler = SchedulerService()
        self.sessions.add_post_auth_hook(self._sync_push_after_login)

        self._push_registration_scheduled = False

    async def _sync_push_after_login(self, session: Session):
        await self.push.sync_after_login(session)

    async def start(self) -> Optional[Session]:
        """App start: storage, discovery, session restore, opportunistic push sync.

        Returns the restored session, if any. Connectivity problems never
        raise here.
        """
        await self.store.initialize(self.config.default_port, self.config.push_platform)

        base_url = await self.discovery.resolve()
        logger.info(f"Starting LibSync client against {base_url}")

        session = await self.sessions.initialize()

        await self.push.load()
        await self.push.detect_revocation()
        if session is not None:
            try:
                await self.push.sync_if_needed()
            except Exception as e:
                logger.warning(f"Push token sync at start-up failed: {e}")

        return session

    async def data_source(self) -> str:
        """The user's choice of live backend ('real') or demo data ('mock')."""
        return await self.store.get_data_source()

    def on_authenticated_screen(self) -> bool:
        """Call when the first signed-in screen has rendered.

        Schedules push registration once per run, a short delay later, so the
        permission prompt does not appear before the user sees the app.
        Returns True if the task was scheduled by this call.
        """
        if self._push_registration_scheduled:
            return False
        if not self.sessions.is_authenticated():
            logger.debug("Not signed in, push registration not scheduled")
            return False

        self.scheduler.schedule_once(
            self.push.register_and_sync,
            self.config.push_registration_delay_seconds,
            PUSH_REGISTRATION_JOB_ID,
        )
        self._push_registration_scheduled = True
        logger.info(
            f"Push registration scheduled in {self.config.push_registration_delay_seconds}s"
        )
        return True

    async def close(self):
        """Stop background work and release connections."""
        self.scheduler.stop()
        if self._owns_client:
            await self.client.aclose()
        if self._owns_store:
            await self.store.close()
        logger.info("LibSync client closed")
