"""
APScheduler-based scheduler for recurring verification batches.
"""

import logging
from collections.abc import Callable
from typing import Any

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class VerificationScheduler:
    """
    Runs verification jobs on an interval or a cron schedule.

    Jobs never overlap: a run that is still going when the next fire time
    arrives causes that fire time to be skipped.
    """

    def __init__(self, scheduler: BlockingScheduler | None = None):
        self.scheduler = scheduler or BlockingScheduler(
            job_defaults={"coalesce": True, "max_instances": 1}
        )
        self.jobs = []

    def add_interval_job(
        self,
        job_func: Callable,
        interval_seconds: int,
        job_id: str,
        **kwargs: Any,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        job = self.scheduler.add_job(
            job_func,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
        )
        self.jobs.append(job)
        logger.info(f"Added interval job '{job_id}' with {interval_seconds}s interval")

    def add_cron_job(
        self,
        job_func: Callable,
        cron_expression: str,
        job_id: str,
        **kwargs: Any,
    ) -> None:
        """
        Add a job on a five-field cron schedule (minute hour day month day_of_week).

        Example cron expressions:
            "0 2 * * *"    - Daily at 02:00
            "0 */6 * * *"  - Every 6 hours
            "30 1 * * 1-5" - Weekdays at 01:30

        Raises:
            ValueError: If the expression does not have five fields
        """
        parts = cron_expression.split()
        if len(parts) != 5:
            raise ValueError(
                "Cron expression must have 5 parts: minute hour day month day_of_week"
            )
        minute, hour, day, month, day_of_week = parts

        job = self.scheduler.add_job(
            job_func,
            trigger=CronTrigger(
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
            ),
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
        )
        self.jobs.append(job)
        logger.info(f"Added cron job '{job_id}' with schedule '{cron_expression}'")

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        self.jobs = [job for job in self.jobs if job.id != job_id]
        logger.info(f"Removed job '{job_id}'")

    def start(self) -> None:
        """Block running scheduled jobs until interrupted."""
        logger.info(f"Starting verification scheduler with {len(self.jobs)} job(s)")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped by user")
            self.stop()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def list_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
