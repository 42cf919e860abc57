import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import redis
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from celery import Celery
from celery.exceptions import Ignore
from celery.result import AsyncResult
from croniter import croniter
from redis.exceptions import LockError

from task_jobs.backends.base import BaseBackend
from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import JobStatus
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobExecutionError
from task_jobs.job_factory import JobFactory

logger = logging.getLogger(__name__)

QUEUE_TASK_NAME = "task_jobs.run_queue_job"
CRON_TASK_NAME = "task_jobs.run_cron_job"
SKIPPED_STATE = "SKIPPED"
SCHEDULED_STATE = "SCHEDULED"
FINAL_STATES = ("SUCCESS", "FAILURE", "REVOKED", SKIPPED_STATE)

WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def cron_trigger(cron_expression: str) -> BaseTrigger:
    """
    Build a UTC APScheduler trigger from a standard 5-field cron expression.

    APScheduler numbers weekdays from Monday, crontab from Sunday, so the
    day-of-week field is expanded by croniter and passed as names. When both
    day-of-month and day-of-week are restricted, crontab fires on either
    while APScheduler requires both, so one trigger per field is combined
    with OrTrigger.
    """
    minute, hour, day, month, _ = cron_expression.split()
    expanded, _ = croniter.expand(cron_expression)
    weekdays = expanded[4]
    day_of_week = "*" if weekdays == ["*"] else ",".join(WEEKDAYS[int(d) % 7] for d in weekdays)
    if expanded[2] == ["*"] or day_of_week == "*":
        return CronTrigger(
            minute=minute, hour=hour, day=day, month=month, day_of_week=day_of_week, timezone=timezone.utc
        )
    return OrTrigger([
        CronTrigger(minute=minute, hour=hour, day=day, month=month, timezone=timezone.utc),
        CronTrigger(minute=minute, hour=hour, month=month, day_of_week=day_of_week, timezone=timezone.utc),
    ])


def create_celery_app(broker_url: str, result_backend: str, name: str = "task_jobs") -> Celery:
    """
    Build a Celery app configured the way CeleryBackend expects: UTC clock,
    STARTED state tracking and extended results.
    """
    app = Celery(name, broker=broker_url, backend=result_backend)
    app.conf.update(
        enable_utc=True,
        timezone="UTC",
        task_track_started=True,
        result_extended=True,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
    )
    return app


class CeleryBackend(BaseBackend):
    """
    Backend delegating execution, retries and result storage to Celery workers.

    Recurring schedules are kept by an APScheduler instance running in the
    process that registers them; each firing sends a Celery task. Workers
    guard recurring runs with a Redis lock so a schedule is never re-entered.
    """

    STATUS_MAP: Dict[str, JobStatus] = {
        "PENDING": JobStatus.ENQUEUED,
        "RECEIVED": JobStatus.ENQUEUED,
        SCHEDULED_STATE: JobStatus.AWAITING,
        "RETRY": JobStatus.AWAITING,
        "STARTED": JobStatus.PROCESSING,
        "SUCCESS": JobStatus.SUCCEEDED,
        "FAILURE": JobStatus.FAILED,
        "REVOKED": JobStatus.DELETED,
        SKIPPED_STATE: JobStatus.DELETED,
    }

    def __init__(
        self,
        job_factory: JobFactory,
        celery_app: Celery,
        cron_scheduler: Optional[AsyncIOScheduler] = None,
        lock_url: Optional[str] = None,
        lock_timeout: int = 3600,
        lock_factory: Optional[Callable[[str], Any]] = None,
    ):
        super().__init__(job_factory)
        self.app = celery_app
        self.app.conf.update(enable_utc=True, timezone="UTC")
        self.cron_scheduler = cron_scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.lock_url = lock_url or self.app.conf.broker_url
        self.lock_timeout = lock_timeout
        self.lock_factory = lock_factory or self._redis_lock
        self.is_paused = False
        self._redis: Optional[redis.Redis] = None
        self._issued: Dict[str, Optional[datetime]] = {}

        @self.app.task(bind=True, name=QUEUE_TASK_NAME, max_retries=None, shared=False)
        def run_queue_job(task, job_id: str, context_data: Dict[str, Any]):
            attempt = task.request.retries + 1
            result, delay = asyncio.run(self.handle_queue_job(job_id, context_data, attempt))
            if result is None:
                task.update_state(state=SKIPPED_STATE)
                raise Ignore()
            if delay is not None:
                raise task.retry(
                    countdown=delay.total_seconds(),
                    exc=JobExecutionError(result.error_message or result.message),
                )
            if not result.success:
                raise JobExecutionError(result.error_message or result.message)
            return result.model_dump(mode="json")

        @self.app.task(bind=True, name=CRON_TASK_NAME, shared=False)
        def run_cron_job(task, job_id: str):
            result = asyncio.run(self.handle_cron_job(job_id))
            if result is None:
                task.update_state(state=SKIPPED_STATE)
                raise Ignore()
            if not result.success:
                raise JobExecutionError(result.error_message or result.message)
            return result.model_dump(mode="json")

        self.queue_task = run_queue_job
        self.cron_task = run_cron_job

    async def start(self):
        if not self.cron_scheduler.running:
            self.cron_scheduler.start(paused=self.is_paused)
            logger.info("CeleryBackend cron scheduler started.")

    async def stop(self):
        if self.cron_scheduler.running:
            self.cron_scheduler.shutdown(wait=False)
            logger.info("CeleryBackend cron scheduler stopped.")

    async def add_or_update_recurring(self, job_id: str, cron_expression: str) -> None:
        self.cron_scheduler.add_job(
            self.send_cron_job,
            cron_trigger(cron_expression),
            args=[job_id],
            id=self._schedule_id(job_id),
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def remove_recurring(self, job_id: str) -> bool:
        try:
            self.cron_scheduler.remove_job(self._schedule_id(job_id))
        except JobLookupError:
            return False
        return True

    def send_cron_job(self, job_id: str) -> str:
        result = self.cron_task.apply_async(args=[job_id])
        logger.info(f"Fired recurring job {job_id} (Celery ID: {result.id})")
        return result.id

    async def enqueue(self, job_id: str, context: JobExecutionContext) -> str:
        result = await asyncio.to_thread(
            self.queue_task.apply_async, args=[job_id, context.model_dump(mode="json")]
        )
        self._issued[result.id] = None
        return result.id

    async def schedule(self, job_id: str, context: JobExecutionContext, delay: timedelta) -> str:
        result = await asyncio.to_thread(
            self.queue_task.apply_async,
            args=[job_id, context.model_dump(mode="json")],
            countdown=delay.total_seconds(),
        )
        self._issued[result.id] = datetime.now(timezone.utc) + delay
        return result.id

    async def delete(self, tracking_id: str) -> bool:
        if tracking_id not in self._issued:
            return False
        state = await asyncio.to_thread(self._celery_state, tracking_id)
        if state in FINAL_STATES:
            self._issued.pop(tracking_id, None)
        if state not in ("PENDING", "RECEIVED", "RETRY"):
            return False
        await asyncio.to_thread(self.app.control.revoke, tracking_id)
        return True

    async def get_state(self, tracking_id: str) -> Optional[str]:
        state = await asyncio.to_thread(self._celery_state, tracking_id)
        if state in FINAL_STATES:
            # Celery keeps the final state in its result backend from here on
            self._issued.pop(tracking_id, None)
        if state != "PENDING":
            return state
        # Celery reports unknown ids as PENDING
        if tracking_id not in self._issued:
            return None
        run_at = self._issued[tracking_id]
        if run_at is not None and run_at > datetime.now(timezone.utc):
            return SCHEDULED_STATE
        return state

    async def pause(self) -> None:
        self.is_paused = True
        if self.cron_scheduler.running:
            self.cron_scheduler.pause()

    async def resume(self) -> None:
        self.is_paused = False
        if self.cron_scheduler.running:
            self.cron_scheduler.resume()

    async def handle_queue_job(
        self, job_id: str, context_data: Dict[str, Any], attempt: int
    ) -> Tuple[Optional[JobResult], Optional[timedelta]]:
        """
        Worker side of an on-demand job: run one attempt and work out the retry delay.
        """
        job = self.job_factory.resolve_by_id(job_id)
        context = JobExecutionContext.model_validate(context_data)
        result = await self.run_attempt(job, context, attempt)
        if result is None:
            return None, None
        return result, await self.retry_delay(job, attempt, result)

    async def handle_cron_job(self, job_id: str) -> Optional[JobResult]:
        """
        Worker side of a recurring job. Returns None when the run was skipped.
        """
        job = self.job_factory.resolve_by_id(job_id)
        lock = self.lock_factory(f"cron_lock:{job_id}")
        if not lock.acquire(blocking=False):
            logger.warning(f"Recurring job {job_id} is still running, skipping this firing")
            return None
        try:
            context = JobExecutionContext(job_name=job.job_name)
            return await self.run_attempt(job, context)
        finally:
            try:
                lock.release()
            except LockError:
                logger.warning(f"Lock for recurring job {job_id} expired before the run finished")

    def _celery_state(self, tracking_id: str) -> str:
        return AsyncResult(tracking_id, app=self.app).state

    def _redis_lock(self, name: str):
        if self._redis is None:
            self._redis = redis.Redis.from_url(self.lock_url)
        return self._redis.lock(name, timeout=self.lock_timeout)

    @staticmethod
    def _schedule_id(job_id: str) -> str:
        return f"cron_job:{job_id}"
