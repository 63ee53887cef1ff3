"""Local store service - persisted client state in the local SQLite database."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_database_url, Settings
from ..database import close_db, create_engine, create_session_factory, init_db
from ..exceptions import ConfigurationError
from ..models import LocalState, PushRegistrationRecord, ServerEndpointRecord
from ..models.local_state import (
    AUTH_TOKEN_KEY,
    DATA_SOURCE_KEY,
    LEGACY_KEY_ALIASES,
    LEGACY_PUSH_TOKEN_KEY,
    LEGACY_SERVER_ADDRESS_KEY,
    USER_DATA_KEY,
)
from ..utils.db_utils import retry_on_lock
from ..utils.endpoints import ServerEndpoint, parse_address

logger = logging.getLogger(__name__)

SINGLETON_ROW_ID = 1


@dataclass
class PushRegistration:
    """This installation's push token and whether the server has acknowledged it."""
    device_token: str
    platform: str
    synced: bool = False
    registered_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None


def _to_registration(record: PushRegistrationRecord) -> PushRegistration:
    return PushRegistration(
        device_token=record.device_token,
        platform=record.platform,
        synced=bool(record.synced),
        registered_at=record.registered_at,
        synced_at=record.synced_at,
    )


class LocalStore:
    """Durable storage for the endpoint, session and push registration.

    Each logical value has exactly one canonical location. Legacy duplicate
    keys from older app versions are folded in once by initialize().
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine = create_engine(database_url)
        self._session_factory = create_session_factory(self._engine)

    @classmethod
    def from_settings(cls, config: Settings) -> "LocalStore":
        return cls(get_database_url(config))

    async def initialize(self, default_port: int = 5000, platform: str = "android") -> Dict[str, int]:
        """Create tables and migrate legacy keys. Returns the migration summary."""
        await init_db(self._engine)
        return await self.migrate_legacy_state(default_port, platform)

    async def close(self):
        await close_db(self._engine)

    # -- key-value state ------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as db:
            row = await db.get(LocalState, key)
            return row.value if row else None

    async def set(self, key: str, value: str):
        await self.set_many({key: value})

    async def set_many(self, values: Dict[str, str]):
        """Write several keys in one transaction - all or nothing."""
        async def _write():
            async with self._session_factory() as db:
                async with db.begin():
                    for key, value in values.items():
                        await db.merge(LocalState(key=key, value=value, updated_at=datetime.utcnow()))

        await retry_on_lock(_write)

    async def delete(self, *keys: str):
        async def _delete():
            async with self._session_factory() as db:
                async with db.begin():
                    await db.execute(delete(LocalState).where(LocalState.key.in_(keys)))

        await retry_on_lock(_delete)

    # -- session --------------------------------------------------------------

    async def load_session(self) -> tuple[Optional[str], Optional[str]]:
        """Return (token, serialized identity); either may be None."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(LocalState).where(LocalState.key.in_([AUTH_TOKEN_KEY, USER_DATA_KEY]))
            )
            rows = {row.key: row.value for row in result.scalars().all()}
        return rows.get(AUTH_TOKEN_KEY), rows.get(USER_DATA_KEY)

    async def save_session(self, token: str, user_json: str):
        await self.set_many({AUTH_TOKEN_KEY: token, USER_DATA_KEY: user_json})

    async def clear_session(self):
        await self.delete(AUTH_TOKEN_KEY, USER_DATA_KEY)

    async def get_data_source(self) -> str:
        """User preference between the live backend ('real') and demo data ('mock')."""
        value = await self.get(DATA_SOURCE_KEY)
        return value if value in ("real", "mock") else "real"

    # -- server endpoint ------------------------------------------------------

    async def load_endpoint(self) -> Optional[ServerEndpoint]:
        async with self._session_factory() as db:
            record = await db.get(ServerEndpointRecord, SINGLETON_ROW_ID)
            if record is None:
                return None
            return ServerEndpoint(
                host=record.host,
                scheme=record.scheme,
                port=record.port,
                last_verified_at=record.last_verified_at,
            )

    async def save_endpoint(self, endpoint: ServerEndpoint):
        async def _write():
            async with self._session_factory() as db:
                async with db.begin():
                    await db.merge(ServerEndpointRecord(
                        id=SINGLETON_ROW_ID,
                        scheme=endpoint.scheme,
                        host=endpoint.host,
                        port=endpoint.port,
                        last_verified_at=endpoint.last_verified_at,
                        updated_at=datetime.utcnow(),
                    ))

        await retry_on_lock(_write)

    async def clear_endpoint(self):
        async def _delete():
            async with self._session_factory() as db:
                async with db.begin():
                    await db.execute(delete(ServerEndpointRecord))

        await retry_on_lock(_delete)

    # -- push registration ----------------------------------------------------

    async def load_push_registration(self) -> Optional[PushRegistration]:
        async with self._session_factory() as db:
            record = await db.get(PushRegistrationRecord, SINGLETON_ROW_ID)
            return _to_registration(record) if record else None

    async def save_push_token(self, token: str, platform: str) -> PushRegistration:
        """Persist the device token. A changed token value must be synced again."""
        async def _write() -> PushRegistration:
            async with self._session_factory() as db:
                async with db.begin():
                    record = await db.get(PushRegistrationRecord, SINGLETON_ROW_ID)
                    if record is None:
                        record = PushRegistrationRecord(
                            id=SINGLETON_ROW_ID,
                            device_token=token,
                            platform=platform,
                            synced=0,
                            registered_at=datetime.utcnow(),
                        )
                        db.add(record)
                    elif record.device_token != token or record.platform != platform:
                        record.device_token = token
                        record.platform = platform
                        record.synced = 0
                        record.synced_at = None
                        record.registered_at = datetime.utcnow()
                return _to_registration(record)

        return await retry_on_lock(_write)

    async def set_push_synced(self, token: str, synced: bool) -> Optional[PushRegistration]:
        """Update the sync flag, only if the stored token is still `token`."""
        async def _write() -> Optional[PushRegistration]:
            async with self._session_factory() as db:
                async with db.begin():
                    record = await db.get(PushRegistrationRecord, SINGLETON_ROW_ID)
                    if record is None or record.device_token != token:
                        return None
                    record.synced = 1 if synced else 0
                    record.synced_at = datetime.utcnow() if synced else None
                return _to_registration(record)

        return await retry_on_lock(_write)

    async def clear_push_registration(self):
        async def _delete():
            async with self._session_factory() as db:
                async with db.begin():
                    await db.execute(delete(PushRegistrationRecord))

        await retry_on_lock(_delete)

    # -- legacy migration -----------------------------------------------------

    async def migrate_legacy_state(self, default_port: int = 5000, platform: str = "android") -> Dict[str, int]:
        """Fold legacy duplicate keys into the canonical schema, once.

        A legacy value is copied only when its canonical slot is empty; the
        legacy rows are removed either way, so later runs find nothing to do.
        """
        summary = {"copied": 0, "removed": 0}

        async def _migrate():
            summary["copied"] = summary["removed"] = 0
            async with self._session_factory() as db:
                async with db.begin():
                    legacy_keys = list(LEGACY_KEY_ALIASES) + [LEGACY_SERVER_ADDRESS_KEY, LEGACY_PUSH_TOKEN_KEY]
                    result = await db.execute(select(LocalState).where(LocalState.key.in_(legacy_keys)))
                    legacy_rows = result.scalars().all()
                    if not legacy_rows:
                        return

                    for row in legacy_rows:
                        if await self._migrate_row(db, row, default_port, platform):
                            summary["copied"] += 1
                        await db.delete(row)
                        summary["removed"] += 1

        await retry_on_lock(_migrate)
        if summary["removed"]:
            logger.info(
                f"Migrated legacy local state: {summary['copied']} copied, {summary['removed']} legacy keys removed"
            )
        return summary

    async def _migrate_row(self, db: AsyncSession, row: LocalState, default_port: int, platform: str) -> bool:
        """Copy one legacy row into its canonical home. Returns True if copied."""
        if row.key in LEGACY_KEY_ALIASES:
            canonical_key = LEGACY_KEY_ALIASES[row.key]
            if await db.get(LocalState, canonical_key) is not None:
                return False
            db.add(LocalState(key=canonical_key, value=row.value))
            return True

        if row.key == LEGACY_SERVER_ADDRESS_KEY:
            if await db.get(ServerEndpointRecord, SINGLETON_ROW_ID) is not None:
                return False
            try:
                endpoint = parse_address(row.value, default_port)
            except ConfigurationError:
                logger.warning(f"Dropping unparseable legacy server address: {row.value!r}")
                return False
            db.add(ServerEndpointRecord(
                id=SINGLETON_ROW_ID,
                scheme=endpoint.scheme,
                host=endpoint.host,
                port=endpoint.port,
            ))
            return True

        if row.key == LEGACY_PUSH_TOKEN_KEY:
            if not row.value or await db.get(PushRegistrationRecord, SINGLETON_ROW_ID) is not None:
                return False
            # Older versions did not record the platform or whether the server had it
            db.add(PushRegistrationRecord(
                id=SINGLETON_ROW_ID,
                device_token=row.value,
                platform=platform,
                synced=0,
                registered_at=datetime.utcnow(),
            ))
            return True

        return False
