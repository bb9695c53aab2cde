"""Cron scheduler for schedule-triggered agents and recurring automations.

Wraps APScheduler's AsyncIOScheduler. Jobs are derived from the triggers
stored on each agent or automation, so nothing here is persisted; the
trigger registries re-create jobs on startup.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError  # type: ignore[import-untyped]
from apscheduler.schedulers.asyncio import (
    AsyncIOScheduler,  # type: ignore[import-untyped]
)
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

logger = structlog.get_logger()

JobCallback = Callable[..., Awaitable[None]]


class JobScheduler:
    """Cron scheduler invoking async callbacks when jobs fire."""

    def __init__(self, timezone: Optional[str] = None) -> None:
        self._scheduler = (
            AsyncIOScheduler(timezone=timezone) if timezone else AsyncIOScheduler()
        )

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    async def start(self) -> None:
        """Start firing jobs."""
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Job scheduler started", jobs=len(self._scheduler.get_jobs()))

    async def stop(self) -> None:
        """Shutdown the scheduler gracefully."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Job scheduler stopped")

    def add_cron_job(
        self,
        job_id: str,
        cron_expression: str,
        callback: JobCallback,
        name: Optional[str] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Add or replace a cron job.

        Args:
            job_id: Stable job id; an existing job with this id is replaced.
            cron_expression: Crontab schedule (e.g. "0 9 * * 1-5").
            callback: Coroutine function called when the job fires.
            name: Human-readable job name.
            kwargs: Keyword arguments passed to the callback.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        trigger = CronTrigger.from_crontab(cron_expression)
        job = self._scheduler.add_job(
            callback,
            trigger=trigger,
            kwargs=kwargs or {},
            id=job_id,
            name=name or job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info("Scheduled job added", job_id=job.id, cron=cron_expression)
        return str(job.id)

    def remove_job(self, job_id: str) -> bool:
        """Remove a job. Returns False if it was not scheduled."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("Job not found in scheduler", job_id=job_id)
            return False
        logger.info("Scheduled job removed", job_id=job_id)
        return True

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "trigger": str(job.trigger),
                "next_run_time": getattr(job, "next_run_time", None),
            }
            for job in self._scheduler.get_jobs()
        ]
