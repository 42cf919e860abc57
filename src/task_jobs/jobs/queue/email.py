import logging
from datetime import datetime, timedelta, timezone

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobValidationError
from task_jobs.jobs.base import QueueJob
from task_jobs.jobs.sample_data import simulate_latency

logger = logging.getLogger(__name__)

RETRY_DELAYS = (timedelta(seconds=60), timedelta(seconds=300), timedelta(seconds=900))


class SendEmailQueueJob(QueueJob):
    """
    Sends a single e-mail.

    Data:
        recipientEmail (str): required.
        subject (str): required.
        body (str): optional.
    """

    job_id = "send-email-queue"
    job_name = "Send Email"
    description = "Sends an email message asynchronously with retry logic"
    max_retry_attempts = 3
    execution_timeout = timedelta(minutes=5)

    async def execute(self, context: JobExecutionContext) -> JobResult:
        start = datetime.now(timezone.utc)
        try:
            logger.info(f"[{context.job_id}] Sending email...")
            recipient = self.require(context, "recipientEmail")
            subject = self.require(context, "subject")
            body = context.get_str("body", "")

            await simulate_latency()
            logger.debug(f"[SIMULATED] Email sent to {recipient} with subject: {subject} ({len(body)} chars)")

            duration_ms = self.elapsed_ms(start)
            logger.info(f"[{context.job_id}] Email sent successfully to {recipient} in {duration_ms}ms")
            return JobResult.succeeded(f"Email sent successfully to {recipient}", duration_ms, {"SentTo": recipient})
        except JobValidationError as e:
            logger.warning(f"[{context.job_id}] Invalid argument: {e}")
            return JobResult.invalid("Invalid email parameters", str(e), self.elapsed_ms(start))
        except Exception as e:
            logger.exception(f"[{context.job_id}] Email sending failed")
            return JobResult.from_exception("Email sending failed", e, self.elapsed_ms(start))

    async def on_retry(self, attempt_number: int, error: Exception) -> timedelta:
        delay = RETRY_DELAYS[min(attempt_number, len(RETRY_DELAYS)) - 1]
        logger.warning(
            f"Email job failed, retrying in {delay.total_seconds():g} seconds (attempt {attempt_number}). Error: {error}"
        )
        return delay
