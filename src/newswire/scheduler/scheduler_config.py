from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
import logging

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """
    Create the scheduler that drives monitor ticks.

    - One in-memory job per monitor (monitor state is not persisted)
    - max_instances=1: a tick never overlaps the previous one for the same monitor
    - coalesce: ticks missed while one was running collapse into a single run
    """

    jobstores = {
        'default': MemoryJobStore()
    }

    executors = {
        'default': AsyncIOExecutor()
    }

    job_defaults = {
        'coalesce': True,
        'max_instances': 1,
        'misfire_grace_time': MonitorJobConfig.MISFIRE_GRACE_SECONDS
    }

    scheduler = AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    return scheduler


class MonitorJobConfig:
    """Settings shared by monitor jobs"""

    JOB_ID_PREFIX = "monitor:"

    # A tick that starts late by more than this is skipped, not run
    MISFIRE_GRACE_SECONDS = 30

    @classmethod
    def job_id(cls, monitor_id: str) -> str:
        return f"{cls.JOB_ID_PREFIX}{monitor_id}"

    @staticmethod
    def trigger(interval_ms: int) -> IntervalTrigger:
        return IntervalTrigger(seconds=interval_ms / 1000.0)
