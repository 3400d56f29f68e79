#!/usr/bin/env python3
"""
Maintenance Scheduler for RenderSpace.

Runs the periodic timeout sweep (render jobs nobody polls anymore) and
trims RQ's failed registry to QUEUE_KEEP_FAILED_COUNT entries. Runs as
its own process, or inside the web app with ENABLE_MAINTENANCE_SCHEDULER.

Usage:
    python -m renderspace.queue.run_scheduler
"""

import asyncio
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from rq import Queue

from renderspace.config import config
from renderspace.queue.tasks import trim_failed_registry
from renderspace.render.reaper import TimeoutReaper
from renderspace.utils.logging import configure_logging, queue_logger as logger


class MaintenanceScheduler:
    """
    Explicitly constructed scheduler for render housekeeping.

    Each job has max_instances=1, so a slow sweep is skipped rather than
    stacked.
    """

    def __init__(
        self,
        reaper: TimeoutReaper,
        queue: Queue,
        sweep_interval_seconds: Optional[int] = None,
        trim_interval_seconds: Optional[int] = None,
    ):
        self.reaper = reaper
        self.queue = queue
        self.sweep_interval = sweep_interval_seconds or config.REAPER_SWEEP_INTERVAL_SECONDS
        self.trim_interval = trim_interval_seconds or config.QUEUE_TRIM_INTERVAL_SECONDS

        self.scheduler = AsyncIOScheduler()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def sweep_timeouts(self) -> int:
        """Fail render jobs past the timeout. Returns how many were failed."""
        try:
            reaped = await self.reaper.sweep()
        except Exception as e:
            logger.error("Timeout sweep failed", error=str(e))
            return 0
        return len(reaped)

    async def trim_failed(self) -> int:
        try:
            return await asyncio.to_thread(trim_failed_registry, self.queue)
        except Exception as e:
            logger.error("Failed registry trim failed", error=str(e))
            return 0

    def start(self):
        """Start the scheduler. Must be called from a running event loop."""
        self.scheduler.add_job(
            self.sweep_timeouts,
            trigger=IntervalTrigger(seconds=self.sweep_interval),
            id="render_timeout_sweep",
            name="Fail timed-out render jobs",
            replace_existing=True,
            max_instances=1
        )
        self.scheduler.add_job(
            self.trim_failed,
            trigger=IntervalTrigger(seconds=self.trim_interval),
            id="render_failed_trim",
            name="Trim the failed render registry",
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            "Maintenance scheduler started",
            sweep_interval=self.sweep_interval,
            trim_interval=self.trim_interval
        )

    async def stop(self):
        """Stop the scheduler gracefully."""
        self._running = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Maintenance scheduler stopped")


async def main():
    """Run the scheduler."""
    from renderspace.container import build_services

    configure_logging(config.LOG_LEVEL)

    print("=" * 50)
    print("RenderSpace Maintenance Scheduler")
    print("=" * 50)

    if not config.REDIS_URL:
        print("❌ ERROR: REDIS_URL environment variable is required")
        sys.exit(1)

    services = build_services(config)
    scheduler = services.create_scheduler()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        print("\n👋 Shutting down scheduler...")
        asyncio.create_task(scheduler.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    scheduler.start()
    print("✅ Scheduler running. Press Ctrl+C to stop.")

    # Keep running
    try:
        while scheduler.running:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        pass
    finally:
        await services.close()

    print("Scheduler stopped.")


if __name__ == "__main__":
    asyncio.run(main())
