import logging
from datetime import datetime, timezone
from typing import Any, Dict

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.jobs.base import CronJob
from task_jobs.jobs.sample_data import simulate_latency

logger = logging.getLogger(__name__)


class GenerateDailyReportCronJob(CronJob):
    """
    Summarizes task activity every business day at 17:00 UTC.

    The report (task totals, today's completions and creations, overdue
    count and a status breakdown) is returned as the result data.
    """

    job_id = "generate-daily-report-cron"
    job_name = "Generate Daily Report"
    cron_expression = "0 17 * * 1-5"
    description = "Generates and sends daily task activity reports"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Starting daily report generation...")
            report = self._collect_statistics(start)
            await self._save_report(report)

            duration_ms = self.elapsed_ms(start)
            logger.info(f"[{context.job_id}] Daily report generated successfully in {duration_ms}ms")
            return JobResult.succeeded("Daily report generated and saved successfully", duration_ms, report)
        except Exception as e:
            logger.exception(f"[{context.job_id}] Failed to generate daily report")
            return JobResult.from_exception("Daily report generation failed", e, self.elapsed_ms(start))

    def _collect_statistics(self, now: datetime) -> Dict[str, Any]:
        logger.debug("[SIMULATED] Querying task statistics from database")
        return {
            "reportDate": now.isoformat(),
            "totalTasks": 156,
            "completedToday": 12,
            "createdToday": 8,
            "overdueTasks": 3,
            "inProgress": 34,
            "pending": 89,
            "completed": 30,
        }

    async def _save_report(self, report: Dict[str, Any]) -> None:
        await simulate_latency()
        logger.debug(f"[SIMULATED] Report for {report['reportDate']} saved to database")
