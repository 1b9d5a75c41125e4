#!/usr/bin/env python3
"""
DailyNews Refresh Scheduler Runner
==================================

Main entry point for the periodic news refresh. Runs one refresh and exits,
or keeps refreshing on the configured interval with ``--service``.
"""

import sys
import signal
import asyncio
import argparse
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dailynews.config.settings import get_settings
from dailynews.database.schema import create_tables
from dailynews.scheduler.refresh_scheduler import RefreshScheduler
from dailynews.utils.ingestion_lock import IngestionLock
from dailynews.utils.logging import configure_application_logging, get_logger_for_component


async def main():
    """Main entry point for the scheduler service."""
    parser = argparse.ArgumentParser(description='DailyNews Refresh Scheduler')
    parser.add_argument('--service', action='store_true',
                        help='Run as continuous service (for Docker/systemd)')
    parser.add_argument('--deadline', type=float,
                        help='Abort a one-time refresh after this many seconds')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if args.debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )
    logger = get_logger_for_component("scheduler_runner")

    create_tables(settings.database.path)
    scheduler = RefreshScheduler(settings)

    if args.service:
        instance_lock = IngestionLock("dailynews-scheduler")
        if not instance_lock.acquire():
            print(f"❌ Another scheduler instance is already running (PID: {instance_lock.holder_pid()})")
            sys.exit(1)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, scheduler.stop)

        print(f"🕐 DailyNews refresh scheduler starting (every {settings.scheduler.interval_minutes} min)")
        print("Press Ctrl+C to stop.")
        try:
            await scheduler.run_forever()
        finally:
            instance_lock.release()
        return

    logger.info("Running one-time refresh")
    summary = await scheduler.run_refresh(deadline=args.deadline)
    if summary['success']:
        print(f"✅ Refresh complete: {summary['admitted']} admitted, {summary['discarded']} discarded")
    else:
        print(f"❌ Refresh failed: {summary['message']}")
    sys.exit(0 if summary['success'] else 1)


if __name__ == "__main__":
    asyncio.run(main())
