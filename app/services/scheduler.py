import asyncio
import logging
import os
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app import database
from app.config import settings
from app.services.supervisor import IdleSupervisor

logger = logging.getLogger(__name__)


def terminate_process():
    # Let the server run its normal graceful shutdown
    os.kill(os.getpid(), signal.SIGTERM)


async def check_idle(supervisor: IdleSupervisor):
    await supervisor.check(drain=database.dispose, terminate=terminate_process)


async def wait_for_database(attempts: int | None = None, delay: float | None = None):
    """Probe the pool until it answers, giving up after `attempts` tries."""
    attempts = attempts or settings.STARTUP_DB_ATTEMPTS
    delay = settings.STARTUP_RETRY_SECONDS if delay is None else delay

    for attempt in range(1, attempts + 1):
        try:
            await database.ping()
            logger.info("[STARTUP] Database connection successful")
            return
        except Exception as e:
            logger.warning("[STARTUP] Database connection attempt %d failed: %s", attempt, e)
            if attempt < attempts:
                logger.info("[STARTUP] Retrying in %s seconds...", delay)
                await asyncio.sleep(delay)
    raise RuntimeError("Failed to establish database connection after multiple attempts")


def setup_scheduler(supervisor: IdleSupervisor):
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        check_idle,
        trigger=IntervalTrigger(seconds=settings.IDLE_CHECK_SECONDS),
        args=[supervisor],
        id="idle_check",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
