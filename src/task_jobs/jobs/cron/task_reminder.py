import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.jobs.base import CronJob
from task_jobs.jobs.queue.task_notification import SendTaskNotificationQueueJob
from task_jobs.jobs.sample_data import SAMPLE_TASKS, is_due, simulate_latency

if TYPE_CHECKING:
    from task_jobs.scheduler import JobScheduler

logger = logging.getLogger(__name__)


class ProcessTaskReminderCronJob(CronJob):
    """
    Sends reminders for tasks due today or overdue. Runs daily at 09:00 UTC.

    For each task found, a SendTaskNotificationQueueJob is enqueued with
    notificationType "Reminder". Without a scheduler the reminders are
    only counted.
    """

    job_id = "process-task-reminders-cron"
    job_name = "Process Task Reminders"
    cron_expression = "0 9 * * *"
    description = "Sends reminder notifications for tasks due today or overdue"

    def __init__(self, scheduler: Optional["JobScheduler"] = None):
        self.scheduler = scheduler

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Starting task reminder processing...")
            reminders_queued = await self._queue_reminders(context, start)

            duration_ms = self.elapsed_ms(start)
            logger.info(
                f"[{context.job_id}] Task reminder processing completed. "
                f"Queued {reminders_queued} reminders in {duration_ms}ms"
            )
            return JobResult.succeeded(
                f"Successfully processed task reminders. Queued {reminders_queued} notifications.",
                duration_ms,
                {"RemindersQueued": reminders_queued},
            )
        except Exception as e:
            logger.exception(f"[{context.job_id}] Failed to process task reminders")
            return JobResult.from_exception("Task reminder processing failed", e, self.elapsed_ms(start))

    async def _queue_reminders(self, context: JobExecutionContext, now: datetime) -> int:
        await simulate_latency()
        logger.debug("[SIMULATED] Processing task reminders from database")
        due_tasks = [task for task in SAMPLE_TASKS if is_due(task, now.date())]

        if self.scheduler is None:
            return len(due_tasks)

        for task in due_tasks:
            tracking_id = await self.scheduler.enqueue_job(
                SendTaskNotificationQueueJob,
                {
                    "taskId": task["ID"],
                    "taskTitle": task["Title"],
                    "notificationType": "Reminder",
                    "recipientEmail": task["AssigneeEmail"],
                    "message": f"Reminder: this task was due on {task['DueDate']}",
                },
                user_id=context.user_id,
                tenant_id=context.tenant_id,
            )
            logger.debug(f"[{context.job_id}] Reminder for task {task['ID']} queued as {tracking_id}")
        return len(due_tasks)
