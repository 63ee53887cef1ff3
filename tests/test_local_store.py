"""Tests for the local state database and the legacy key migration."""
import json

import pytest

from libsync.models.local_state import AUTH_TOKEN_KEY, DATA_SOURCE_KEY, USER_DATA_KEY
from libsync.services.local_store import LocalStore
from libsync.utils.endpoints import ServerEndpoint

from .conftest import SAMPLE_USER


class TestKeyValue:
    @pytest.mark.asyncio
    async def test_set_get_delete(self, store: LocalStore) -> None:
        assert await store.get("missing") is None

        await store.set("api_mode", "mock")
        assert await store.get("api_mode") == "mock"

        await store.set("api_mode", "real")
        assert await store.get("api_mode") == "real"

        await store.delete("api_mode")
        assert await store.get("api_mode") is None

    @pytest.mark.asyncio
    async def test_data_source_defaults_to_real(self, store: LocalStore) -> None:
        assert await store.get_data_source() == "real"

        await store.set(DATA_SOURCE_KEY, "mock")
        assert await store.get_data_source() == "mock"

        await store.set(DATA_SOURCE_KEY, "something-else")
        assert await store.get_data_source() == "real"


class TestSessionStorage:
    @pytest.mark.asyncio
    async def test_save_and_clear_session(self, store: LocalStore) -> None:
        await store.save_session("tok-1", json.dumps(SAMPLE_USER))
        token, user_json = await store.load_session()
        assert token == "tok-1"
        assert json.loads(user_json)["email"] == "asha@campus.edu"

        await store.clear_session()
        assert await store.load_session() == (None, None)

    @pytest.mark.asyncio
    async def test_clear_session_keeps_data_source(self, store: LocalStore) -> None:
        await store.set(DATA_SOURCE_KEY, "mock")
        await store.save_session("tok-1", "{}")

        await store.clear_session()

        assert await store.get_data_source() == "mock"

    @pytest.mark.asyncio
    async def test_session_survives_restart(self, db_url: str) -> None:
        first = LocalStore(db_url)
        await first.initialize()
        await first.save_session("tok-1", '{"id": "u1"}')
        await first.close()

        second = LocalStore(db_url)
        await second.initialize()
        try:
            assert await second.load_session() == ("tok-1", '{"id": "u1"}')
        finally:
            await second.close()


class TestEndpointStorage:
    @pytest.mark.asyncio
    async def test_single_endpoint_is_replaced(self, store: LocalStore) -> None:
        assert await store.load_endpoint() is None

        await store.save_endpoint(ServerEndpoint(host="10.0.2.2", port=5000))
        await store.save_endpoint(ServerEndpoint(host="prod.example.com", scheme="https"))

        endpoint = await store.load_endpoint()
        assert endpoint.base_url == "https://prod.example.com"

        await store.clear_endpoint()
        assert await store.load_endpoint() is None


class TestPushRegistrationStorage:
    @pytest.mark.asyncio
    async def test_new_token_starts_unsynced(self, store: LocalStore) -> None:
        registration = await store.save_push_token("ExponentPushToken[a]", "android")
        assert registration.synced is False
        assert registration.registered_at is not None

    @pytest.mark.asyncio
    async def test_changed_token_must_be_synced_again(self, store: LocalStore) -> None:
        await store.save_push_token("ExponentPushToken[a]", "android")
        await store.set_push_synced("ExponentPushToken[a]", True)

        same = await store.save_push_token("ExponentPushToken[a]", "android")
        assert same.synced is True

        changed = await store.save_push_token("ExponentPushToken[b]", "android")
        assert changed.synced is False
        assert changed.synced_at is None

    @pytest.mark.asyncio
    async def test_sync_flag_ignored_for_stale_token(self, store: LocalStore) -> None:
        await store.save_push_token("ExponentPushToken[b]", "android")

        assert await store.set_push_synced("ExponentPushToken[a]", True) is None

        registration = await store.load_push_registration()
        assert registration.synced is False


class TestLegacyMigration:
    @pytest.mark.asyncio
    async def test_legacy_keys_are_folded_into_canonical_schema(self, store: LocalStore) -> None:
        await store.set_many({
            "token": "legacy-token",
            "userData": json.dumps(SAMPLE_USER),
            "server_ip": "192.168.1.20",
            "expo_push_token": "ExponentPushToken[legacy]",
        })

        summary = await store.migrate_legacy_state(default_port=5000, platform="ios")

        assert summary == {"copied": 4, "removed": 4}
        token, user_json = await store.load_session()
        assert token == "legacy-token"
        assert json.loads(user_json)["studentID"] == "CS2024-017"
        assert (await store.load_endpoint()).base_url == "http://192.168.1.20:5000"
        registration = await store.load_push_registration()
        assert registration.device_token == "ExponentPushToken[legacy]"
        assert registration.platform == "ios"
        assert registration.synced is False
        for key in ("token", "userData", "server_ip", "expo_push_token"):
            assert await store.get(key) is None

    @pytest.mark.asyncio
    async def test_canonical_value_wins_over_legacy(self, store: LocalStore) -> None:
        await store.set_many({AUTH_TOKEN_KEY: "current-token", "token": "stale-token"})

        summary = await store.migrate_legacy_state()

        assert summary == {"copied": 0, "removed": 1}
        assert await store.get(AUTH_TOKEN_KEY) == "current-token"
        assert await store.get("token") is None

    @pytest.mark.asyncio
    async def test_migration_runs_once(self, store: LocalStore) -> None:
        await store.set("userData", "{}")

        await store.migrate_legacy_state()
        assert await store.migrate_legacy_state() == {"copied": 0, "removed": 0}
        assert await store.get(USER_DATA_KEY) == "{}"

    @pytest.mark.asyncio
    async def test_unparseable_legacy_address_is_dropped(self, store: LocalStore) -> None:
        await store.set("server_ip", "not a host")

        summary = await store.migrate_legacy_state()

        assert summary == {"copied": 0, "removed": 1}
        assert await store.load_endpoint() is None
        assert await store.get("server_ip") is None
