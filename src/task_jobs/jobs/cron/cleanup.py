import logging
from datetime import datetime, timedelta, timezone

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.jobs.base import CronJob
from task_jobs.jobs.sample_data import simulate_latency

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=30)


class CleanupOldTasksCronJob(CronJob):
    """
    Removes completed tasks older than 30 days. Runs daily at 02:00 UTC.
    """

    job_id = "cleanup-old-tasks"
    job_name = "Cleanup Old Tasks"
    cron_expression = "0 2 * * *"
    description = "Removes completed tasks older than 30 days from the database"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Starting cleanup job...")
            cutoff = start - RETENTION

            await simulate_latency()
            logger.debug(f"[SIMULATED] Deleting completed tasks last updated before {cutoff.isoformat()}")
            deleted_count = 0

            duration_ms = self.elapsed_ms(start)
            logger.info(f"[{context.job_id}] Cleanup job completed successfully in {duration_ms}ms")
            return JobResult.succeeded(
                "Cleanup completed successfully",
                duration_ms,
                {"DeletedCount": deleted_count, "Cutoff": cutoff.isoformat()},
            )
        except Exception as e:
            logger.exception(f"[{context.job_id}] Cleanup job failed")
            return JobResult.from_exception("Cleanup failed", e, self.elapsed_ms(start))
