"""Shared fixtures: a temporary state database, pipelines and a fake push service."""
from typing import Optional

import httpx
import pytest
import pytest_asyncio

from libsync.config import Settings
from libsync.schemas.auth import UserIdentity
from libsync.services.local_store import LocalStore
from libsync.services.pipeline import RequestPipeline, build_authenticated_chain, build_public_chain
from libsync.services.push_provider import PermissionStatus
from libsync.services.push_tokens import PushTokenManager
from libsync.services.session_manager import SessionManager

BASE_URL = "http://testserver"

SAMPLE_USER = {
    "_id": "64f1c0ffee",
    "name": "Asha Rao",
    "email": "asha@campus.edu",
    "role": "student",
    "studentID": "CS2024-017",
    "department": "CSE",
}


class StaticBaseUrl:
    """Base URL source that never probes."""

    def __init__(self, url: str = BASE_URL):
        self.url = url

    async def get_base_url(self) -> str:
        return self.url


class FakePushProvider:
    """Push service double that counts every call into the platform."""

    def __init__(
        self,
        physical: bool = True,
        status: PermissionStatus = PermissionStatus.UNDETERMINED,
        answer: PermissionStatus = PermissionStatus.GRANTED,
        token: Optional[str] = "ExponentPushToken[abc123def456]",
        platform: str = "android",
    ):
        self.platform = platform
        self.physical = physical
        self.status = status
        self.answer = answer
        self.token = token
        self.status_checks = 0
        self.permission_requests = 0
        self.token_requests = 0

    def is_physical_device(self) -> bool:
        return self.physical

    async def get_permission_status(self) -> PermissionStatus:
        self.status_checks += 1
        return self.status

    async def request_permission(self) -> PermissionStatus:
        self.permission_requests += 1
        self.status = self.answer
        return self.answer

    async def get_push_token(self) -> Optional[str]:
        self.token_requests += 1
        return self.token


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        data_path=str(tmp_path),
        candidate_hosts=["127.0.0.1", "10.0.2.2", "prod.example.com"],
        probe_timeout_seconds=0.5,
        manual_probe_timeout_seconds=0.5,
        push_registration_delay_seconds=0.05,
    )


@pytest_asyncio.fixture
async def store(db_url):
    local_store = LocalStore(db_url)
    await local_store.initialize()
    yield local_store
    await local_store.close()


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def public_api(http_client) -> RequestPipeline:
    return RequestPipeline(http_client, StaticBaseUrl(), build_public_chain())


@pytest.fixture
def sessions(store, public_api) -> SessionManager:
    return SessionManager(store, public_api)


@pytest.fixture
def api(http_client, sessions) -> RequestPipeline:
    return RequestPipeline(http_client, StaticBaseUrl(), build_authenticated_chain(sessions))


@pytest.fixture
def push_provider() -> FakePushProvider:
    return FakePushProvider()


@pytest.fixture
def push_manager(store, sessions, api, push_provider) -> PushTokenManager:
    return PushTokenManager(store, sessions, api, push_provider)


@pytest_asyncio.fixture
async def signed_in(store, sessions):
    """A session saved as if a previous run had logged in."""
    user = UserIdentity.model_validate(SAMPLE_USER)
    await store.save_session("tok-123", user.to_storage())
    await sessions.initialize()
    return sessions
