import html
import logging
from datetime import datetime, timedelta, timezone

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobValidationError
from task_jobs.jobs.base import QueueJob
from task_jobs.jobs.sample_data import simulate_latency

logger = logging.getLogger(__name__)

SUBJECTS = {
    "Created": "New Task Created: {title}",
    "Assigned": "Task Assigned to You: {title}",
    "Updated": "Task Updated: {title}",
    "Completed": "Task Completed: {title}",
    "Reminder": "Task Reminder: {title}",
}
DEFAULT_SUBJECT = "Task Notification: {title}"

HEADLINES = {
    "Created": "A new task has been created in the system.",
    "Assigned": "A task has been assigned to you.",
    "Updated": "A task you're working on has been updated.",
    "Completed": "A task has been marked as completed.",
    "Reminder": "A task assigned to you is due.",
}
DEFAULT_HEADLINE = "A task has been updated."

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: #007bff; color: white; padding: 20px; border-radius: 5px; }}
    .content {{ padding: 20px; background-color: #f9f9f9; margin: 20px 0; }}
    .footer {{ color: #666; font-size: 12px; margin-top: 20px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h2>Task Management Notification</h2></div>
    <div class="content">
      <h3>{headline}</h3>
      <p><strong>Task:</strong> {title}</p>
      <p><strong>Task ID:</strong> {task_id}</p>
      <p>{message}</p>
    </div>
    <div class="footer">
      <p>This is an automated notification from Task Management System.</p>
    </div>
  </div>
</body>
</html>"""


def build_subject(notification_type: str, title: str) -> str:
    return SUBJECTS.get(notification_type, DEFAULT_SUBJECT).format(title=title)


def build_body(notification_type: str, title: str, message: str, task_id: str) -> str:
    return EMAIL_TEMPLATE.format(
        headline=HEADLINES.get(notification_type, DEFAULT_HEADLINE),
        title=html.escape(title),
        task_id=html.escape(task_id),
        message=html.escape(message),
    )


class SendTaskNotificationQueueJob(QueueJob):
    """
    Notifies a user that a task was created, assigned, updated, completed or is due.

    Data:
        taskId (str): required.
        recipientEmail (str): required.
        taskTitle (str): defaults to "Untitled Task".
        notificationType (str): Created, Assigned, Updated, Completed or Reminder. Defaults to "Updated".
        message (str): defaults to "A task has been updated".
    """

    job_id = "send-task-notification-queue"
    job_name = "Send Task Notification"
    description = "Sends email notification when a task is created, assigned, updated, or completed"
    max_retry_attempts = 3
    execution_timeout = timedelta(minutes=2)

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Starting to send task notification...")
            task_id = self.require(context, "taskId")
            recipient = self.require(context, "recipientEmail")
            title = context.get_str("taskTitle", "Untitled Task")
            notification_type = context.get_str("notificationType", "Updated")
            message = context.get_str("message", "A task has been updated")

            subject = build_subject(notification_type, title)
            body = build_body(notification_type, title, message, task_id)

            logger.info(
                f"[{context.job_id}] Sending {notification_type} notification for task '{title}' to {recipient}"
            )
            await simulate_latency()
            logger.debug(f"[SIMULATED] Email sent to {recipient} with subject: {subject} ({len(body)} chars)")

            duration_ms = self.elapsed_ms(start)
            logger.info(f"[{context.job_id}] Notification sent successfully to {recipient} in {duration_ms}ms")
            return JobResult.succeeded(
                f"Notification sent successfully to {recipient}",
                duration_ms,
                {"SentTo": recipient, "NotificationType": notification_type},
            )
        except JobValidationError as e:
            logger.warning(f"[{context.job_id}] Invalid argument: {e}")
            return JobResult.invalid("Invalid notification parameters", str(e), self.elapsed_ms(start))
        except Exception as e:
            logger.exception(f"[{context.job_id}] Failed to send notification")
            return JobResult.from_exception("Notification delivery failed", e, self.elapsed_ms(start))
