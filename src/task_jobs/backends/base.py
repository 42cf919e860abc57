from abc import ABC, abstractmethod
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import JobStatus
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobExecutionError
from task_jobs.job_factory import JobFactory
from task_jobs.jobs.base import BaseJob, QueueJob

logger = logging.getLogger(__name__)


class BaseBackend(ABC):
    """
    Durable execution backend behind the JobScheduler.

    Concrete backends persist submissions, run attempts on their own
    workers and own the retry loop. `STATUS_MAP` translates their native
    state names into JobStatus.
    """

    STATUS_MAP: Dict[str, JobStatus] = {}

    def __init__(self, job_factory: JobFactory):
        self.job_factory: JobFactory = job_factory

    async def start(self):
        pass

    async def stop(self):
        pass

    @abstractmethod
    async def add_or_update_recurring(self, job_id: str, cron_expression: str) -> None:
        """Register or replace the recurring schedule keyed by job_id (UTC)."""
        ...

    @abstractmethod
    async def remove_recurring(self, job_id: str) -> bool:
        ...

    @abstractmethod
    async def enqueue(self, job_id: str, context: JobExecutionContext) -> str:
        """Submit a job for immediate execution and return its tracking id."""
        ...

    @abstractmethod
    async def schedule(self, job_id: str, context: JobExecutionContext, delay: timedelta) -> str:
        """Submit a job to run no earlier than now + delay and return its tracking id."""
        ...

    @abstractmethod
    async def delete(self, tracking_id: str) -> bool:
        ...

    @abstractmethod
    async def get_state(self, tracking_id: str) -> Optional[str]:
        """Return the native state name, or None if the tracking id is unknown."""
        ...

    @abstractmethod
    async def pause(self) -> None:
        ...

    @abstractmethod
    async def resume(self) -> None:
        ...

    async def run_attempt(self, job: BaseJob, context: JobExecutionContext, attempt: int = 1) -> Optional[JobResult]:
        """
        Run a single attempt of a job.

        Returns None when the job's precondition declined to run.
        """
        if not await job.can_execute():
            logger.info(f"[{context.job_id}] {job.job_name} skipped: precondition not met")
            return None

        started = datetime.now(timezone.utc)
        timeout = getattr(job, "execution_timeout", None)
        try:
            if timeout is not None:
                result = await asyncio.wait_for(job.execute(context), timeout.total_seconds())
            else:
                result = await job.execute(context)
        except asyncio.TimeoutError:
            result = JobResult.failed(
                f"{job.job_name} timed out",
                f"Execution exceeded {timeout.total_seconds():g} seconds",
                duration_ms=BaseJob.elapsed_ms(started),
            )
        except Exception as e:
            logger.exception(f"[{context.job_id}] Unhandled error in {job.job_name}")
            result = JobResult.from_exception(f"{job.job_name} failed", e, BaseJob.elapsed_ms(started))

        result = result.with_retry_count(attempt - 1)
        try:
            await job.on_completed(result)
        except Exception:
            logger.exception(f"[{context.job_id}] on_completed hook of {job.job_name} failed")
        return result

    async def retry_delay(self, job: BaseJob, attempt: int, result: JobResult) -> Optional[timedelta]:
        """
        Delay before the next attempt, or None when the job should not be retried.
        """
        if result.success or not result.retryable or not isinstance(job, QueueJob):
            return None
        if attempt > job.max_retry_attempts:
            return None
        delay = await job.on_retry(attempt, JobExecutionError(result.error_message or result.message, result))
        return max(delay, timedelta(0))
