"""Run-all tick scheduling using APScheduler."""

import asyncio
import logging
from typing import NoReturn

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scriptvoid.config import Settings
from scriptvoid.jobs import default_registry
from scriptvoid.orchestrator import RunAllSummary, run_all
from scriptvoid.storage.connection import open_store

logger = logging.getLogger(__name__)


async def _tick(settings: Settings) -> RunAllSummary:
    async with open_store(settings) as store:
        return await run_all(
            store,
            default_registry(settings),
            inter_job_delay_ms=settings.orchestrator.inter_job_delay_ms,
        )


def run_all_job(settings: Settings) -> None:
    """One scheduler tick: a full run-all pass on its own event loop."""
    try:
        summary = asyncio.run(_tick(settings))
        logger.info(
            f"Tick finished: {summary.successful} ok, {summary.errors} failed "
            f"({summary.total_duration}ms)"
        )
    except Exception as e:
        logger.error(f"Run-all tick failed: {e}", exc_info=True)


def start_scheduler(settings: Settings) -> NoReturn:
    """Start the APScheduler with the run-all tick."""
    scheduler = BlockingScheduler()

    # max_instances=1 keeps ticks from overlapping; a late tick is coalesced.
    scheduler.add_job(
        run_all_job,
        IntervalTrigger(minutes=settings.orchestrator.interval_minutes),
        args=[settings],
        id="run-all",
        name="Run all batch jobs",
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        f"Registered job: Run all (every {settings.orchestrator.interval_minutes} min)"
    )

    try:
        logger.info("✓ Scheduler starting...")
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown()
        logger.info("✓ Scheduler stopped cleanly")
