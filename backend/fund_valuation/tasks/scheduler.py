"""Background task scheduler for periodic cache maintenance."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fund_valuation.config import CACHE_PURGE_INTERVAL
from fund_valuation.services.holdings import HoldingsResolver

logger = logging.getLogger(__name__)


async def purge_holdings_cache(resolver: HoldingsResolver) -> int:
    """Drop expired holdings so the cache only holds live entries."""
    removed = resolver.cache.purge_expired()
    if removed:
        logger.info(f"Purged {removed} expired holdings cache entries")
    return removed


def start_scheduler(
    resolver: HoldingsResolver, interval: int = CACHE_PURGE_INTERVAL
) -> AsyncIOScheduler:
    """Create, register jobs on and start a scheduler bound to the running loop."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        purge_holdings_cache,
        IntervalTrigger(seconds=interval),
        args=[resolver],
        id="purge_holdings_cache",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: holdings cache purge every {interval}s")
    return scheduler


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
