"""Tests for the deferred task scheduler."""
import asyncio

import pytest

from libsync.services.scheduler import SchedulerService


class TestSchedulerService:
    @pytest.mark.asyncio
    async def test_job_runs_once_after_delay(self) -> None:
        scheduler = SchedulerService()
        done = asyncio.Event()
        runs = []

        async def job() -> None:
            runs.append(1)
            done.set()

        scheduler.schedule_once(job, 0.05, "deferred")
        assert scheduler.running is True
        try:
            await asyncio.wait_for(done.wait(), timeout=5)
            await asyncio.sleep(0.1)
        finally:
            scheduler.stop()

        assert runs == [1]

    @pytest.mark.asyncio
    async def test_cancel_pending_job(self) -> None:
        scheduler = SchedulerService()

        async def job() -> None:
            raise AssertionError("cancelled job must not run")

        scheduler.schedule_once(job, 30, "deferred")
        try:
            assert scheduler.get_job("deferred") is not None
            assert scheduler.cancel("deferred") is True
            assert scheduler.get_job("deferred") is None
            assert scheduler.cancel("deferred") is False
        finally:
            scheduler.stop()

        assert scheduler.running is False

    def test_get_job_before_start(self) -> None:
        assert SchedulerService().get_job("anything") is None
