"""Tests for the lock-retry helper."""
import pytest
from sqlalchemy.exc import OperationalError

from libsync.utils.db_utils import retry_on_lock


def locked() -> OperationalError:
    return OperationalError("UPDATE local_state", {}, Exception("database is locked"))


class TestRetryOnLock:
    @pytest.mark.asyncio
    async def test_retries_transient_lock(self) -> None:
        attempts = []

        async def write() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise locked()
            return "ok"

        assert await retry_on_lock(write, base_delay=0.001) == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        async def write() -> None:
            raise locked()

        with pytest.raises(OperationalError):
            await retry_on_lock(write, max_retries=2, base_delay=0.001)

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self) -> None:
        attempts = []

        async def write() -> None:
            attempts.append(1)
            raise OperationalError("SELECT", {}, Exception("no such table: local_state"))

        with pytest.raises(OperationalError):
            await retry_on_lock(write)
        assert len(attempts) == 1
