import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobValidationError

logger = logging.getLogger(__name__)


class BaseJob(ABC):
    """
    Capabilities shared by recurring and on-demand jobs.

    Subclasses declare their identity as class attributes and implement
    `execute`. Instances are created fresh for every use and must not keep
    state between executions.
    """

    job_id: ClassVar[str]
    job_name: ClassVar[str]
    description: ClassVar[str] = ""

    @abstractmethod
    async def execute(self, context: JobExecutionContext) -> JobResult:
        """
        Perform the unit of work.

        Expected failures are returned as a failed JobResult; only
        unexpected errors may propagate.
        """
        ...

    async def can_execute(self) -> bool:
        """
        Precondition checked right before execute. Returning False skips the
        attempt without consuming a retry.
        """
        return True

    async def on_completed(self, result: JobResult) -> None:
        """
        Called once after every attempt that produced a result.
        """
        if result.success:
            logger.info(f"{self.job_name} completed: {result.message}")
        else:
            logger.error(f"{self.job_name} failed after {result.retry_count} retries: {result.error_message}")

    @staticmethod
    def require(context: JobExecutionContext, key: str) -> str:
        value = context.get_str(key)
        if value is None:
            raise JobValidationError(f"{key} is required")
        return value

    @staticmethod
    def elapsed_ms(start: datetime) -> int:
        return max(0, int((datetime.now(timezone.utc) - start).total_seconds() * 1000))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} job_id={self.job_id!r}>"


class CronJob(BaseJob):
    """
    A job executed on a cron schedule. The schedule is interpreted in UTC.
    """

    cron_expression: ClassVar[str]
    is_enabled: ClassVar[bool] = True


class QueueJob(BaseJob):
    """
    A job executed once per enqueue call, retried on failure.
    """

    max_retry_attempts: ClassVar[int] = 3
    execution_timeout: ClassVar[timedelta] = timedelta(minutes=5)

    async def on_retry(self, attempt_number: int, error: Exception) -> timedelta:
        """
        Return the delay before the next attempt. Exponential backoff by default:
        1s, 2s, 4s, 8s, ...
        """
        delay = timedelta(seconds=2 ** (attempt_number - 1))
        logger.warning(
            f"{self.job_name} failed, retrying in {delay.total_seconds():g} seconds "
            f"(attempt {attempt_number}). Error: {error}"
        )
        return delay


def describe(job: Any) -> str:
    """
    One-line description of a job class or instance, used in startup logs.
    """
    schedule = getattr(job, "cron_expression", None)
    if schedule:
        return f"{job.job_name} ({job.job_id}, cron '{schedule}')"
    return f"{job.job_name} ({job.job_id}, {job.max_retry_attempts} retries)"
