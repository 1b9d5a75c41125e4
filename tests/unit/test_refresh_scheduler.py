"""
Tests for Refresh Scheduler
===========================

Scheduled and manual refreshes with the pipeline mocked out.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from dailynews.processing.pipeline import GroupResult, IngestionResult
from dailynews.scheduler.refresh_scheduler import RefreshScheduler
from dailynews.utils.exceptions import (
    IngestionInProgressError,
    IngestionTimeoutError,
    StorageError,
)
from dailynews.utils.ingestion_lock import IngestionLock


def _result(admitted=4):
    result = IngestionResult(mode="full", groups=[GroupResult("sports", "es", sources_total=2, admitted=admitted)])
    result.finished_at = result.started_at
    return result


@pytest.fixture
def pipeline():
    pipeline = Mock()
    pipeline.run_full_ingestion = AsyncMock(return_value=_result())
    return pipeline


@pytest.fixture
def lock(tmp_path):
    return IngestionLock("refresh-test", str(tmp_path))


@pytest.fixture
def scheduler(settings, db_connection, pipeline, lock):
    return RefreshScheduler(settings, db_connection, pipeline=pipeline, lock=lock)


class TestRunRefresh:
    @pytest.mark.asyncio
    async def test_successful_refresh(self, scheduler, pipeline):
        summary = await scheduler.run_refresh(deadline=30)

        assert summary["success"] is True
        assert summary["admitted"] == 4
        assert summary["groups"] == 1
        assert scheduler.runs_completed == 1
        assert scheduler.last_result is summary
        pipeline.run_full_ingestion.assert_awaited_once_with(deadline=30)

    @pytest.mark.asyncio
    async def test_pipeline_error_reported(self, scheduler, pipeline):
        pipeline.run_full_ingestion.side_effect = StorageError("cannot list sources")

        summary = await scheduler.run_refresh()

        assert summary["success"] is False
        assert "cannot list sources" in summary["message"]
        assert scheduler.runs_completed == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(self, scheduler, pipeline):
        pipeline.run_full_ingestion.side_effect = RuntimeError("boom")

        summary = await scheduler.run_refresh()

        assert summary["success"] is False
        assert "boom" in summary["message"]

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere(self, scheduler, pipeline, tmp_path):
        other = IngestionLock("refresh-test", str(tmp_path))
        other.acquire()
        try:
            summary = await scheduler.run_refresh()
        finally:
            other.release()

        assert summary["success"] is False
        pipeline.run_full_ingestion.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, scheduler, lock):
        await scheduler.run_refresh()
        assert not lock.acquired

    @pytest.mark.asyncio
    async def test_overlapping_refresh_does_not_jam_later_runs(self, scheduler, pipeline, lock):
        started = asyncio.Event()
        finish = asyncio.Event()

        async def slow_run(deadline=None):
            started.set()
            await finish.wait()
            return _result()

        pipeline.run_full_ingestion = AsyncMock(side_effect=slow_run)

        first = asyncio.create_task(scheduler.run_refresh())
        await started.wait()
        overlapping = await scheduler.run_refresh()
        finish.set()
        first_summary = await first

        assert overlapping["success"] is False
        assert first_summary["success"] is True
        assert not lock.acquired

        pipeline.run_full_ingestion = AsyncMock(return_value=_result(admitted=2))
        third = await scheduler.run_refresh()

        assert third["success"] is True
        assert third["admitted"] == 2


class TestManualRefresh:
    @pytest.mark.asyncio
    async def test_returns_result(self, scheduler, pipeline):
        result = await scheduler.trigger_manual_refresh(timeout=15)

        assert result.total_admitted == 4
        pipeline.run_full_ingestion.assert_awaited_once_with(deadline=15)
        assert scheduler.get_status()["last_result"]["success"] is True

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(self, scheduler, pipeline, settings):
        await scheduler.trigger_manual_refresh()
        pipeline.run_full_ingestion.assert_awaited_once_with(
            deadline=settings.limits.manual_refresh_timeout
        )

    @pytest.mark.asyncio
    async def test_hard_timeout(self, scheduler, pipeline, lock):
        async def hang(deadline=None):
            await asyncio.sleep(5)

        pipeline.run_full_ingestion.side_effect = hang

        with pytest.raises(IngestionTimeoutError):
            await scheduler.trigger_manual_refresh(timeout=0.05)
        assert not lock.acquired

    @pytest.mark.asyncio
    async def test_in_progress_raises(self, scheduler, tmp_path):
        other = IngestionLock("refresh-test", str(tmp_path))
        other.acquire()
        try:
            with pytest.raises(IngestionInProgressError):
                await scheduler.trigger_manual_refresh(timeout=5)
        finally:
            other.release()


class TestLoop:
    @pytest.mark.asyncio
    async def test_run_on_startup_then_stop(self, scheduler, pipeline):
        task = asyncio.ensure_future(scheduler.run_forever())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert pipeline.run_full_ingestion.await_count == 1

    @pytest.mark.asyncio
    async def test_interval_triggers_refresh(self, scheduler, pipeline, settings):
        settings.scheduler.run_on_startup = False
        scheduler.interval_seconds = 0.02

        task = asyncio.ensure_future(scheduler.run_forever())
        await asyncio.sleep(0.1)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert pipeline.run_full_ingestion.await_count >= 2

    def test_status(self, scheduler, settings):
        status = scheduler.get_status()

        assert status["interval_minutes"] == settings.scheduler.interval_minutes
        assert status["runs_completed"] == 0
        assert status["last_run_at"] is None
