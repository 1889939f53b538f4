"""Background scheduler that evicts solved and expired challenges."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reverse_captcha.services.challenge_store import ChallengeStore

logger = logging.getLogger(__name__)


def sweep(store: ChallengeStore) -> None:
    """Run one eviction pass over the challenge store."""
    try:
        evicted = store.evict()
        if evicted:
            logger.info(f"Sweep: evicted {evicted} challenges, {len(store)} remain")
    except Exception as e:
        logger.error(f"Sweep failed: {e}")


def start_scheduler(store: ChallengeStore, interval_seconds: int) -> BackgroundScheduler:
    """Start a background scheduler sweeping the given store."""
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        sweep,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[store],
        id="evict_challenges",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started - sweep runs every {interval_seconds} second(s)")
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    """Shutdown the scheduler without waiting for a running sweep."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
