import asyncio
import csv
import json
import logging
import os
import re
import tempfile
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobValidationError
from task_jobs.jobs.base import QueueJob
from task_jobs.jobs.sample_data import EXPORT_COLUMNS, SAMPLE_TASKS, is_overdue, simulate_latency

logger = logging.getLogger(__name__)

TaskFilter = Callable[[Dict[str, Any], date], bool]

FILTERS: Dict[str, TaskFilter] = {
    "all": lambda task, today: True,
    "completed": lambda task, today: task["Status"] == "Completed",
    "pending": lambda task, today: task["Status"] == "Pending",
    "in_progress": lambda task, today: task["Status"] == "InProgress",
    "overdue": is_overdue,
}
FORMATS = ("csv", "json")


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value)


class ExportTasksQueueJob(QueueJob):
    """
    Exports a user's tasks to a file and sends it to them.

    Data:
        userId (str): required.
        userEmail (str): required.
        filters (str): all, completed, pending, overdue or in_progress. Defaults to "all".
        format (str): csv or json. Defaults to "csv".
    """

    job_id = "export-tasks-to-csv-queue"
    job_name = "Export Tasks to CSV"
    description = "Exports user's tasks to CSV format and sends via email"
    max_retry_attempts = 3
    execution_timeout = timedelta(minutes=5)

    def __init__(self, export_dir: Optional[str] = None):
        self.export_dir = export_dir

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Starting task export process...")
            user_id = self.require(context, "userId")
            email = self.require(context, "userEmail")
            task_filter = context.get_str("filters", "all").lower()
            export_format = context.get_str("format", "csv").lower()
            if task_filter not in FILTERS:
                raise JobValidationError(f"Unsupported filter '{task_filter}'")
            if export_format not in FORMATS:
                raise JobValidationError(f"Unsupported format '{export_format}'")

            logger.info(
                f"[{context.job_id}] Exporting tasks for user {user_id} (filter: {task_filter}, format: {export_format})"
            )
            rows = await self._fetch_tasks(user_id, task_filter, start.date())
            file_path = await asyncio.to_thread(self._write_export, user_id, rows, export_format, start)

            await simulate_latency()
            logger.debug(f"[SIMULATED] Sending export file {os.path.basename(file_path)} to {email}")

            duration_ms = self.elapsed_ms(start)
            logger.info(f"[{context.job_id}] Export completed for user {user_id} in {duration_ms}ms")
            return JobResult.succeeded(
                f"Tasks exported successfully and sent to {email}",
                duration_ms,
                {
                    "UserId": user_id,
                    "Email": email,
                    "Filter": task_filter,
                    "Format": export_format,
                    "FilePath": file_path,
                    "RowCount": len(rows),
                },
            )
        except JobValidationError as e:
            logger.warning(f"[{context.job_id}] Invalid argument: {e}")
            return JobResult.invalid("Invalid export parameters", str(e), self.elapsed_ms(start))
        except Exception as e:
            logger.exception(f"[{context.job_id}] Failed to export tasks")
            return JobResult.from_exception("Task export failed", e, self.elapsed_ms(start))

    async def _fetch_tasks(self, user_id: str, task_filter: str, today: date) -> List[Dict[str, Any]]:
        await simulate_latency()
        logger.debug(f"[SIMULATED] Fetching tasks for user {user_id} with filter: {task_filter}")
        matches = FILTERS[task_filter]
        return [{column: task[column] for column in EXPORT_COLUMNS} for task in SAMPLE_TASKS if matches(task, today)]

    def _write_export(self, user_id: str, rows: List[Dict[str, Any]], export_format: str, now: datetime) -> str:
        export_dir = self.export_dir or tempfile.gettempdir()
        os.makedirs(export_dir, exist_ok=True)
        file_name = f"tasks-export-{_safe_name(user_id)}-{now:%Y%m%d-%H%M%S}.{export_format}"
        file_path = os.path.join(export_dir, file_name)

        with open(file_path, "w", newline="", encoding="utf-8") as f:
            if export_format == "json":
                json.dump(rows, f, indent=2)
            else:
                writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
                writer.writeheader()
                writer.writerows(rows)
        return file_path
