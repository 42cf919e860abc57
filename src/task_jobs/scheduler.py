import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from croniter import croniter

from task_jobs.backends.base import BaseBackend
from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import JobStatus
from task_jobs.errors import BackendError, JobValidationError, SchedulerError
from task_jobs.job_factory import JobFactory
from task_jobs.jobs.base import CronJob, QueueJob

logger = logging.getLogger(__name__)


def validate_cron_expression(cron_expression: str) -> None:
    fields = cron_expression.split()
    if len(fields) == 6:
        raise JobValidationError("Unsupported cron expression with seconds")
    if len(fields) != 5 or not croniter.is_valid(cron_expression):
        raise JobValidationError(f"Invalid cron expression: '{cron_expression}'")


class JobScheduler:
    """
    Facade that registers, enqueues and inspects background jobs.

    The scheduler keeps no state of its own: jobs are resolved through the
    factory for every call and everything durable lives in the backend.
    Failures are logged and re-raised; backend failures are wrapped in
    BackendError.
    """

    def __init__(self, backend: BaseBackend):
        self.backend: BaseBackend = backend

    @property
    def job_factory(self) -> JobFactory:
        return self.backend.job_factory

    async def schedule_cron_job(self, job_class: Type[CronJob]) -> str:
        """
        Register a recurring job. Disabled jobs are left unregistered.

        Returns:
            str: The job's stable id.
        """
        try:
            job = self.job_factory.resolve(job_class)
            if not job.is_enabled:
                logger.info(f"Cron job '{job.job_name}' is disabled, skipping registration")
                return job.job_id

            validate_cron_expression(job.cron_expression)

            await self._call_backend(self.backend.add_or_update_recurring(job.job_id, job.cron_expression))
            logger.info(
                f"Scheduled cron job '{job.job_name}' (ID: {job.job_id}) with expression: {job.cron_expression}"
            )
            return job.job_id
        except Exception:
            logger.exception(f"Failed to schedule cron job of type {job_class.__name__}")
            raise

    async def enqueue_job(
        self,
        job_class: Type[QueueJob],
        data: Optional[Dict[str, Any]] = None,
        *,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> str:
        """
        Submit an on-demand job for immediate execution.

        Returns:
            str: The backend tracking id, distinct from the execution id in the context.
        """
        try:
            job = self.job_factory.resolve(job_class)
            context = self._build_context(job, data, user_id, tenant_id)
            tracking_id = await self._call_backend(self.backend.enqueue(job.job_id, context))
            logger.info(f"Enqueued job '{job.job_name}' (Tracking ID: {tracking_id}, Context ID: {context.job_id})")
            return tracking_id
        except Exception:
            logger.exception(f"Failed to enqueue job of type {job_class.__name__}")
            raise

    async def schedule_job(
        self,
        job_class: Type[QueueJob],
        delay_until: datetime,
        data: Optional[Dict[str, Any]] = None,
        *,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> str:
        """
        Submit an on-demand job to run no earlier than delay_until.

        Raises:
            JobValidationError: If delay_until is in the past.
        """
        try:
            job = self.job_factory.resolve(job_class)
            if delay_until.tzinfo is None:
                logger.warning("delay_until does not include a timezone, treating it as UTC")
                delay_until = delay_until.replace(tzinfo=timezone.utc)

            delay = delay_until - datetime.now(timezone.utc)
            if delay.total_seconds() < 0:
                raise JobValidationError("delay_until must be in the future")

            context = self._build_context(job, data, user_id, tenant_id)
            tracking_id = await self._call_backend(self.backend.schedule(job.job_id, context, delay))
            logger.info(
                f"Scheduled job '{job.job_name}' to execute at {delay_until.isoformat()} "
                f"(Tracking ID: {tracking_id}, Context ID: {context.job_id})"
            )
            return tracking_id
        except Exception:
            logger.exception(f"Failed to schedule job of type {job_class.__name__}")
            raise

    async def cancel_job(self, tracking_id: str) -> bool:
        try:
            removed = await self._call_backend(self.backend.delete(tracking_id))
        except Exception:
            logger.exception(f"Failed to cancel job {tracking_id}")
            raise
        if removed:
            logger.info(f"Cancelled job with Tracking ID: {tracking_id}")
        else:
            logger.info(f"Job {tracking_id} was not found or has already started")
        return removed

    async def get_job_status(self, tracking_id: str) -> Optional[JobStatus]:
        try:
            state = await self._call_backend(self.backend.get_state(tracking_id))
        except Exception:
            logger.exception(f"Failed to get status for job {tracking_id}")
            raise
        if state is None:
            return None
        status = self.backend.STATUS_MAP.get(state)
        if status is None:
            logger.warning(f"Job {tracking_id} is in unmapped backend state '{state}'")
        return status

    async def pause_scheduler(self) -> None:
        """
        Stop recurring schedules from firing. Running and on-demand jobs are not halted.
        """
        try:
            await self._call_backend(self.backend.pause())
        except Exception:
            logger.exception("Failed to pause scheduler")
            raise
        logger.info("Scheduler paused, recurring jobs will not fire until resumed")

    async def resume_scheduler(self) -> None:
        try:
            await self._call_backend(self.backend.resume())
        except Exception:
            logger.exception("Failed to resume scheduler")
            raise
        logger.info("Scheduler resumed")

    @staticmethod
    def _build_context(
        job: QueueJob,
        data: Optional[Dict[str, Any]],
        user_id: Optional[str],
        tenant_id: Optional[str],
    ) -> JobExecutionContext:
        return JobExecutionContext(
            job_name=job.job_name,
            data=dict(data or {}),
            user_id=user_id,
            tenant_id=tenant_id,
        )

    @staticmethod
    async def _call_backend(call):
        try:
            return await call
        except SchedulerError:
            raise
        except Exception as e:
            raise BackendError(f"Backend call failed: {e}") from e
