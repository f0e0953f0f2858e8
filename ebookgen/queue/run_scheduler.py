#!/usr/bin/env python3
"""
Maintenance scheduler.

Periodically recomputes job counters from page records and fails pages
whose worker disappeared while holding them.

Usage:
    python -m ebookgen.queue.run_scheduler
"""

import asyncio
import signal
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ebookgen.config import config
from ebookgen.errors import EbookError
from ebookgen.jobs.reconciler import Reconciler
from ebookgen.store.connection import close_redis_connection, get_redis_connection
from ebookgen.store.repository import EbookStore
from ebookgen.utils.logging import configure_logging, scheduler_logger as logger


class MaintenanceScheduler:
    """
    Runs the reconciler and the stale-page reaper on interval triggers.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        interval_seconds: int = 60,
        processing_timeout_seconds: int = 900,
    ):
        self.reconciler = reconciler
        self.interval = interval_seconds
        self.processing_timeout = processing_timeout_seconds

        self.scheduler = AsyncIOScheduler()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        self.scheduler.add_job(
            self.reconcile,
            trigger=IntervalTrigger(seconds=self.interval),
            id="reconcile_counters",
            name="Recompute job counters from pages",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.add_job(
            self.reap,
            trigger=IntervalTrigger(seconds=self.interval),
            id="reap_stale_pages",
            name="Fail pages stuck in processing",
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            "Maintenance scheduler started",
            interval=self.interval,
            processing_timeout=self.processing_timeout
        )

    def stop(self):
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Maintenance scheduler stopped")

    async def reconcile(self) -> int:
        """Returns the number of jobs whose counters were corrected."""
        try:
            results = await self.reconciler.reconcile_all()
        except EbookError as e:
            logger.error(f"Reconcile pass failed: {e}")
            return 0
        fixed = sum(1 for r in results if r.applied)
        if fixed:
            logger.info(f"Reconciled {fixed} job(s)", scanned=len(results))
        return fixed

    async def reap(self) -> int:
        """Returns the number of stale pages marked failed."""
        try:
            reaped = await self.reconciler.reap_stale_processing(self.processing_timeout)
        except EbookError as e:
            logger.error(f"Stale page scan failed: {e}")
            return 0
        if reaped:
            logger.warning(f"Failed {reaped} stale page(s)")
        return reaped


async def main() -> int:
    configure_logging(config.LOG_LEVEL)

    print("=" * 50)
    print("Ebook Maintenance Scheduler")
    print("=" * 50)

    if not config.redis_configured:
        print("❌ ERROR: REDIS_URL environment variable is required")
        return 1
    if not config.RECONCILE_ENABLED:
        print("Reconciler disabled (RECONCILE_ENABLED=false), exiting.")
        return 0

    store = EbookStore(await get_redis_connection())
    scheduler = MaintenanceScheduler(
        Reconciler(store),
        interval_seconds=config.RECONCILE_INTERVAL_SECONDS,
        processing_timeout_seconds=config.PROCESSING_TIMEOUT_SECONDS,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        print("\n👋 Shutting down scheduler...")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    scheduler.start()
    print("✅ Scheduler running. Press Ctrl+C to stop.")

    # One pass immediately so a restart repairs drift without waiting
    await scheduler.reconcile()

    try:
        await stop_event.wait()
    finally:
        scheduler.stop()
        await close_redis_connection()

    print("Scheduler stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
