"""Session manager - owns the signed-in identity and bearer token.

States:
    ANONYMOUS  --login/register-->  AUTHENTICATED
    AUTHENTICATED  --logout / 401-->  ANONYMOUS

Login and register either fully succeed (token and identity persisted in one
transaction and cached) or leave everything as it was.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from ..exceptions import InvalidCredentials, RegistrationRejected, ServerError
from ..schemas.auth import AuthResponse, LoginRequest, RegisterProfile, UserIdentity
from .local_store import LocalStore
from .pipeline import RequestPipeline

logger = logging.getLogger(__name__)

# Backend answers a bad login with 401 (wrong password) or 404 (unknown user)
LOGIN_REJECTED_STATUSES = (400, 401, 404)
REGISTER_REJECTED_STATUSES = (400, 409, 422)


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Session:
    """A bearer token together with the identity it belongs to."""
    token: str
    user: UserIdentity


PostAuthHook = Callable[[Session], Awaitable[None]]


class SessionManager:
    """Login, register, logout and the cached session they produce."""

    def __init__(self, store: LocalStore, public_api: RequestPipeline):
        self._store = store
        self._public_api = public_api
        self._token: Optional[str] = None
        self._user: Optional[UserIdentity] = None
        self._post_auth_hooks: List[PostAuthHook] = []

    # -- reads ----------------------------------------------------------------

    def get_token(self) -> Optional[str]:
        return self._token

    def get_user(self) -> Optional[UserIdentity]:
        return self._user

    def is_authenticated(self) -> bool:
        return bool(self._token and self._user)

    @property
    def state(self) -> SessionState:
        return SessionState.AUTHENTICATED if self.is_authenticated() else SessionState.ANONYMOUS

    @property
    def session(self) -> Optional[Session]:
        if not self.is_authenticated():
            return None
        return Session(token=self._token, user=self._user)

    def add_post_auth_hook(self, hook: PostAuthHook):
        """Run `hook` after every successful login or register."""
        self._post_auth_hooks.append(hook)

    # -- persistence ----------------------------------------------------------

    async def _load_persisted(self) -> Optional[Session]:
        token, user_json = await self._store.load_session()
        if not token and not user_json:
            return None
        if not token or not user_json:
            logger.warning("Found a partial saved session (token without user or user without token), ignoring it")
            return None
        try:
            user = UserIdentity.model_validate_json(user_json)
        except ValidationError as e:
            logger.warning(f"Saved user data is unreadable, ignoring saved session: {e.error_count()} errors")
            return None
        return Session(token=token, user=user)

    async def initialize(self) -> Optional[Session]:
        """Restore a saved session at process start. Never raises."""
        try:
            restored = await self._load_persisted()
        except Exception as e:
            logger.error(f"Auth initialization failed: {e}")
            return None

        if restored is None:
            logger.info("No saved session")
            return None

        self._token = restored.token
        self._user = restored.user
        logger.info(f"Restored session for user {restored.user.id}")
        return restored

    async def reload_token(self) -> Optional[str]:
        """Re-read persisted storage when the in-memory session is empty."""
        if self._token:
            return self._token
        restored = await self._load_persisted()
        if restored is None:
            return None
        self._token = restored.token
        self._user = restored.user
        logger.debug("Reloaded session from storage")
        return self._token

    # -- transitions ----------------------------------------------------------

    async def _establish(self, data) -> Session:
        """Validate an auth response, then persist and cache it atomically."""
        try:
            auth = AuthResponse.model_validate(data)
        except ValidationError as e:
            raise ServerError(200, "Invalid response: missing token or user data") from e

        await self._store.save_session(auth.token, auth.user.to_storage())
        self._token = auth.token
        self._user = auth.user
        session = Session(token=auth.token, user=auth.user)
        await self._run_post_auth_hooks(session)
        return session

    async def _run_post_auth_hooks(self, session: Session):
        for hook in self._post_auth_hooks:
            try:
                await hook(session)
            except Exception as e:
                # Never fail a login because of a follow-up task
                logger.error(f"Post-login task {getattr(hook, '__name__', hook)!r} failed: {e}")

    async def login(self, identifier: str, secret: str) -> Session:
        """Sign in with an email (or student ID) and password.

        Raises:
            InvalidCredentials: either value is empty, or the backend rejected them
            NetworkError: the backend could not be reached
            ServerError: any other backend failure
        """
        try:
            body = LoginRequest(email=identifier, password=secret)
        except ValidationError as e:
            raise InvalidCredentials("Email/Student ID and password are required") from e

        try:
            data = await self._public_api.post("/auth/login", json=body.model_dump())
        except ServerError as e:
            if e.status_code in LOGIN_REJECTED_STATUSES:
                logger.info(f"Login rejected ({e.status_code})")
                raise InvalidCredentials(e.server_message, status_code=e.status_code) from e
            raise

        session = await self._establish(data)
        logger.info(f"User {session.user.id} logged in")
        return session

    async def register(self, profile: RegisterProfile) -> Session:
        """Create an account and sign in to it.

        `profile` is validated when the caller builds it, so malformed form
        data fails there with a pydantic ValidationError before any request.

        Raises:
            RegistrationRejected: duplicate email/student ID or invalid fields
            NetworkError: the backend could not be reached
            ServerError: any other backend failure
        """
        try:
            data = await self._public_api.post("/auth/register", json=profile.to_backend())
        except ServerError as e:
            if e.status_code in REGISTER_REJECTED_STATUSES:
                logger.info(f"Registration rejected ({e.status_code}): {e.server_message}")
                raise RegistrationRejected(e.server_message, status_code=e.status_code) from e
            raise

        session = await self._establish(data)
        logger.info(f"User {session.user.id} registered")
        return session

    async def logout(self):
        """Clear the session. Safe to call when already signed out.

        The data-source preference and the push registration are left alone.
        """
        was_authenticated = self.is_authenticated()
        self._token = None
        self._user = None
        await self._store.clear_session()
        if was_authenticated:
            logger.info("Logged out")
