"""
DailyNews Refresh Scheduler
===========================

Periodic full refresh of the news store plus the manually triggered
refresh with a run-level deadline.

Features:
- Interval loop with optional run on startup
- Cross-process exclusion through the ingestion file lock
- Manual refresh bounded by ``limits.manual_refresh_timeout``
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config.settings import DailyNewsSettings, get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..processing.pipeline import IngestionPipeline, IngestionResult
from ..utils.exceptions import DailyNewsError, IngestionTimeoutError, handle_exception
from ..utils.ingestion_lock import IngestionLock, ingestion_lock_for
from ..utils.logging import get_logger_for_component


class RefreshScheduler:
    """
    Runs the full ingestion on a fixed interval.

    One instance is meant to live for the whole scheduler process; manual
    refreshes from the same process share its pipeline and therefore its
    run lock.
    """

    def __init__(
        self,
        settings: Optional[DailyNewsSettings] = None,
        db_connection: Optional[DatabaseConnection] = None,
        pipeline: Optional[IngestionPipeline] = None,
        lock: Optional[IngestionLock] = None,
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("scheduler")
        self.db = db_connection or get_db_manager(self.settings.database.path)
        self.pipeline = pipeline or IngestionPipeline(self.db, self.settings)
        self.lock = lock or ingestion_lock_for(self.settings.database.path)

        self.interval_seconds = self.settings.scheduler.interval_minutes * 60
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self.runs_completed = 0
        self._stop_event: Optional[asyncio.Event] = None

    def _summary(self, success: bool, result: Optional[IngestionResult] = None, message: str = "") -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "success": success,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": message,
        }
        if result is not None:
            summary.update(
                {
                    "admitted": result.total_admitted,
                    "discarded": result.total_discarded,
                    "groups": len(result.groups),
                    "sources_failed": result.sources_failed,
                    "purge_failed": result.purge_failed,
                    "duration_seconds": result.duration_seconds,
                }
            )
        return summary

    async def _locked_run(self, deadline: Optional[float]) -> IngestionResult:
        with self.lock:
            return await self.pipeline.run_full_ingestion(deadline=deadline)

    async def run_refresh(self, deadline: Optional[float] = None) -> Dict[str, Any]:
        """
        Execute one scheduled refresh.

        Errors are logged and reported in the summary, never raised, so the
        interval loop keeps going.
        """
        self.logger.info("Starting scheduled refresh")
        try:
            result = await self._locked_run(deadline)
            summary = self._summary(True, result)
            self.runs_completed += 1
            self.logger.info(
                f"Scheduled refresh completed: {result.total_admitted} items admitted",
                extra={"duration_seconds": result.duration_seconds},
            )
        except DailyNewsError as e:
            self.logger.error(f"Scheduled refresh failed: {e}", extra=e.to_dict())
            summary = self._summary(False, message=str(e))
        except Exception as e:
            error = handle_exception(e, self.logger, "scheduled refresh")
            summary = self._summary(False, message=str(error))

        self.last_run_at = datetime.now(timezone.utc)
        self.last_result = summary
        return summary

    async def trigger_manual_refresh(self, timeout: Optional[float] = None) -> IngestionResult:
        """Run a full refresh now, bounded by the manual refresh timeout.

        Raises:
            IngestionTimeoutError: If the run exceeds the timeout
            IngestionInProgressError: If another process is refreshing
            StorageError: If active sources cannot be listed
        """
        timeout = timeout or self.settings.limits.manual_refresh_timeout
        self.logger.info(f"Manual refresh requested (timeout {timeout}s)")

        try:
            result = await asyncio.wait_for(self._locked_run(deadline=timeout), timeout=timeout)
        except asyncio.TimeoutError:
            raise IngestionTimeoutError(
                f"Manual refresh exceeded {timeout}s",
                context={"timeout": timeout},
            )

        self.last_run_at = datetime.now(timezone.utc)
        self.last_result = self._summary(True, result)
        return result

    async def run_forever(self) -> None:
        """Run refreshes every ``scheduler.interval_minutes`` until ``stop`` is called."""
        self._stop_event = asyncio.Event()
        self.logger.info(f"Refresh scheduler started, interval {self.interval_seconds}s")

        if self.settings.scheduler.run_on_startup:
            await self.run_refresh()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_refresh()

        self.logger.info("Refresh scheduler stopped")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def get_status(self) -> Dict[str, Any]:
        return {
            "interval_minutes": self.settings.scheduler.interval_minutes,
            "runs_completed": self.runs_completed,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_result": self.last_result,
        }
