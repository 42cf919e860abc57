import asyncio
import logging
from typing import Dict, Optional, Set
from datetime import datetime, timedelta, timezone
from croniter import croniter

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import JobKind, JobRecord, JobStatus, RecordState
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobResolutionError
from task_jobs.job_factory import JobFactory
from task_jobs.storages.protocol import Storage
from task_jobs.storages.sqlalchemy import InMemoryStorage
from .base import BaseBackend

logger = logging.getLogger(__name__)


class InMemoryBackend(BaseBackend):
    """
    Single-process backend with real-time scheduling using asyncio.
    WARNING: This backend is meant for development and tests.
    Recurring schedules live in memory and must be registered again after a
    restart. On-demand records that were scheduled, enqueued or retrying are
    reloaded from storage by start(); records left processing by a crash stay
    as they are.
    """

    STATUS_MAP: Dict[str, JobStatus] = {
        RecordState.SCHEDULED.value: JobStatus.AWAITING,
        RecordState.ENQUEUED.value: JobStatus.ENQUEUED,
        RecordState.PROCESSING.value: JobStatus.PROCESSING,
        RecordState.RETRYING.value: JobStatus.AWAITING,
        RecordState.SUCCEEDED.value: JobStatus.SUCCEEDED,
        RecordState.FAILED.value: JobStatus.FAILED,
        RecordState.DELETED.value: JobStatus.DELETED,
        RecordState.SKIPPED.value: JobStatus.DELETED,
    }

    def __init__(
        self,
        job_factory: JobFactory,
        storage: Optional[Storage] = None,
        poll_interval: float = 1.0,
        max_workers: int = 4,
    ):
        super().__init__(job_factory)
        self.storage: Storage = storage if storage is not None else InMemoryStorage()
        self.poll_interval: float = poll_interval
        self.max_workers: int = max_workers
        self.scheduler_task: Optional[asyncio.Task] = None
        self.is_running: bool = False
        self.is_paused: bool = False
        self.job_futures: Dict[str, asyncio.Task] = {}
        self.recurring: Dict[str, str] = {}
        self.next_execution_times: Dict[str, datetime] = {}
        self._pending: Dict[str, Optional[datetime]] = {}
        self._cron_runs: Dict[str, str] = {}
        self._claimed: Set[str] = set()
        self._cancelled: Set[str] = set()
        self._workers = asyncio.Semaphore(max_workers)

    async def start(self):
        """
        Start the backend scheduler.
        """
        create_tables = getattr(self.storage, "create_tables", None)
        if create_tables is not None:
            await create_tables()
        if not self.is_running:
            await self._reload_waiting()
            self.is_running = True
            self.scheduler_task = asyncio.create_task(self._scheduler_loop())
            logger.info("InMemoryBackend started.")

    async def stop(self):
        """
        Stop the backend scheduler and cancel running jobs.
        """
        if self.is_running:
            self.is_running = False
            if self.scheduler_task:
                self.scheduler_task.cancel()
                try:
                    await self.scheduler_task
                except asyncio.CancelledError:
                    pass
        for future in self.job_futures.values():
            if not future.done():
                future.cancel()
        await asyncio.gather(*self.job_futures.values(), return_exceptions=True)
        self.job_futures.clear()
        logger.info("InMemoryBackend stopped.")

    async def add_or_update_recurring(self, job_id: str, cron_expression: str) -> None:
        self.recurring[job_id] = cron_expression
        self._update_next_execution_time(job_id, datetime.now(timezone.utc))

    async def remove_recurring(self, job_id: str) -> bool:
        self.next_execution_times.pop(job_id, None)
        return self.recurring.pop(job_id, None) is not None

    async def enqueue(self, job_id: str, context: JobExecutionContext) -> str:
        return await self._submit(job_id, context, None)

    async def schedule(self, job_id: str, context: JobExecutionContext, delay: timedelta) -> str:
        return await self._submit(job_id, context, datetime.now(timezone.utc) + delay)

    async def delete(self, tracking_id: str) -> bool:
        record = await self.storage.get_record(tracking_id)
        if record is None or record.is_final or record.state == RecordState.PROCESSING:
            return False
        if tracking_id in self._claimed:
            return False
        self._pending.pop(tracking_id, None)
        if tracking_id in self.job_futures:
            # Dispatched but still waiting for a worker slot
            self._cancelled.add(tracking_id)
        record.set_state(RecordState.DELETED)
        return await self.storage.update_record(record)

    async def get_state(self, tracking_id: str) -> Optional[str]:
        record = await self.storage.get_record(tracking_id)
        return record.state.value if record else None

    async def pause(self) -> None:
        self.is_paused = True

    async def resume(self) -> None:
        self.is_paused = False
        # Firings missed while paused are not replayed
        now = datetime.now(timezone.utc)
        for job_id in self.recurring:
            self._update_next_execution_time(job_id, now)

    async def _submit(self, job_id: str, context: JobExecutionContext, run_at: Optional[datetime]) -> str:
        record = JobRecord(
            job_id=job_id,
            job_name=context.job_name,
            context=context,
            state=RecordState.SCHEDULED if run_at else RecordState.ENQUEUED,
            scheduled_for=run_at,
        )
        await self.storage.create_record(record)
        self._pending[record.tracking_id] = run_at
        return record.tracking_id

    async def _reload_waiting(self):
        for record in await self.storage.list_waiting():
            if record.tracking_id not in self._pending and record.tracking_id not in self.job_futures:
                self._pending[record.tracking_id] = record.scheduled_for if record.state != RecordState.ENQUEUED else None
        if self._pending:
            logger.info(f"Reloaded {len(self._pending)} waiting job(s) from storage")

    def _update_next_execution_time(self, job_id: str, now: datetime):
        cron = croniter(self.recurring[job_id], now)
        self.next_execution_times[job_id] = cron.get_next(datetime)

    async def _scheduler_loop(self):
        """
        Main scheduler loop that checks for jobs to execute using asyncio.
        """
        while self.is_running:
            try:
                await self.dispatch_due()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in scheduler loop")
            await asyncio.sleep(self.poll_interval)

    async def dispatch_due(self, now: Optional[datetime] = None) -> None:
        """
        Start every pending job whose time has come and fire due recurring schedules.
        """
        now = now or datetime.now(timezone.utc)
        for tracking_id, run_at in list(self._pending.items()):
            if run_at is None or run_at <= now:
                del self._pending[tracking_id]
                self._start(tracking_id)

        if self.is_paused:
            return
        for job_id, next_execution in list(self.next_execution_times.items()):
            if next_execution <= now:
                self._update_next_execution_time(job_id, now)
                await self._fire_recurring(job_id)

    async def run_pending(self, max_rounds: int = 100) -> None:
        """
        Dispatch and await due work until nothing is left to run right now,
        including retries whose delay has already elapsed.
        """
        for _ in range(max_rounds):
            await self.dispatch_due()
            running = [f for f in self.job_futures.values() if not f.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def _fire_recurring(self, job_id: str):
        running_id = self._cron_runs.get(job_id)
        running = self.job_futures.get(running_id) if running_id else None
        if running is not None and not running.done():
            logger.warning(f"Recurring job {job_id} is still running, skipping this firing")
            return

        job = self.job_factory.resolve_by_id(job_id)
        context = JobExecutionContext(job_name=job.job_name)
        record = JobRecord(job_id=job_id, job_name=job.job_name, kind=JobKind.CRON, context=context)
        await self.storage.create_record(record)
        self._cron_runs[job_id] = record.tracking_id
        self._start(record.tracking_id)

    def _start(self, tracking_id: str):
        future = asyncio.create_task(self._process(tracking_id))
        self.job_futures[tracking_id] = future
        future.add_done_callback(lambda f: self._handle_job_completion(tracking_id, f))

    def _handle_job_completion(self, tracking_id: str, future: asyncio.Future):
        if self.job_futures.get(tracking_id) is future:
            del self.job_futures[tracking_id]
        self._cancelled.discard(tracking_id)
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Job {tracking_id} crashed: {future.exception()!r}")

    async def _process(self, tracking_id: str):
        async with self._workers:
            # delete() and the claim below never interleave: neither awaits between check and set
            if tracking_id in self._cancelled:
                logger.info(f"Job {tracking_id} was cancelled before it started")
                return
            self._claimed.add(tracking_id)
            try:
                await self._run_claimed(tracking_id)
            finally:
                self._claimed.discard(tracking_id)

    async def _run_claimed(self, tracking_id: str):
        """
        Run one attempt of a record and decide what happens next.
        """
        record = await self.storage.get_record(tracking_id)
        if record is None or record.is_final:
            return

        try:
            job = self.job_factory.resolve_by_id(record.job_id)
        except JobResolutionError as e:
            logger.error(f"Job {tracking_id} cannot run: {e}")
            record.set_result(JobResult.from_exception(f"{record.job_name} could not be resolved", e))
            await self.storage.update_record(record)
            return

        try:
            record.attempts += 1
            record.set_state(RecordState.PROCESSING)
            await self.storage.update_record(record)
            result = await self.run_attempt(job, record.context, record.attempts)
        except asyncio.CancelledError:
            record.set_result(JobResult.failed(f"{record.job_name} was cancelled", "Execution cancelled"))
            await self.storage.update_record(record)
            raise

        if result is None:
            record.attempts -= 1
            record.set_state(RecordState.SKIPPED)
            await self.storage.update_record(record)
            return

        delay = await self.retry_delay(job, record.attempts, result)
        if delay is None:
            record.set_result(result)
            await self.storage.update_record(record)
            return

        record.set_result(result, RecordState.RETRYING)
        record.scheduled_for = datetime.now(timezone.utc) + delay
        await self.storage.update_record(record)
        self._pending[tracking_id] = record.scheduled_for
        logger.info(f"Job {tracking_id} will retry at {record.scheduled_for.isoformat()}")
