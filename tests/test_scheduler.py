from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from task_jobs.backends.base import BaseBackend
from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.job import JobStatus
from task_jobs.domain.result import JobResult
from task_jobs.errors import BackendError, JobResolutionError, JobValidationError
from task_jobs.job_factory import JobFactory
from task_jobs.jobs.base import CronJob, QueueJob
from task_jobs.scheduler import JobScheduler


class SpyBackend(BaseBackend):
    STATUS_MAP = {
        "waiting": JobStatus.AWAITING,
        "queued": JobStatus.ENQUEUED,
        "done": JobStatus.SUCCEEDED,
    }

    def __init__(self, job_factory: JobFactory):
        super().__init__(job_factory)
        self.recurring: Dict[str, str] = {}
        self.upserts = 0
        self.submitted: List[Tuple[str, JobExecutionContext, Optional[timedelta]]] = []
        self.states: Dict[str, str] = {}
        self.paused = False
        self.fail_with: Optional[Exception] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def add_or_update_recurring(self, job_id: str, cron_expression: str) -> None:
        self._maybe_fail()
        self.upserts += 1
        self.recurring[job_id] = cron_expression

    async def remove_recurring(self, job_id: str) -> bool:
        return self.recurring.pop(job_id, None) is not None

    async def enqueue(self, job_id: str, context: JobExecutionContext) -> str:
        self._maybe_fail()
        self.submitted.append((job_id, context, None))
        tracking_id = f"track-{len(self.submitted)}"
        self.states[tracking_id] = "queued"
        return tracking_id

    async def schedule(self, job_id: str, context: JobExecutionContext, delay: timedelta) -> str:
        self._maybe_fail()
        self.submitted.append((job_id, context, delay))
        tracking_id = f"track-{len(self.submitted)}"
        self.states[tracking_id] = "waiting"
        return tracking_id

    async def delete(self, tracking_id: str) -> bool:
        return self.states.pop(tracking_id, None) is not None

    async def get_state(self, tracking_id: str) -> Optional[str]:
        self._maybe_fail()
        return self.states.get(tracking_id)

    async def pause(self) -> None:
        self.paused = True

    async def resume(self) -> None:
        self.paused = False


class NightlyJob(CronJob):
    job_id = "nightly"
    job_name = "Nightly"
    cron_expression = "0 3 * * *"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class DisabledJob(CronJob):
    job_id = "disabled"
    job_name = "Disabled"
    cron_expression = "0 3 * * *"
    is_enabled = False

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class DisabledBrokenJob(CronJob):
    job_id = "disabled-broken"
    job_name = "Disabled Broken"
    cron_expression = "not a cron"
    is_enabled = False

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class SecondsJob(CronJob):
    job_id = "seconds"
    job_name = "Every Second"
    cron_expression = "* * * * * *"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class BrokenCronJob(CronJob):
    job_id = "broken"
    job_name = "Broken"
    cron_expression = "61 * * * *"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class NotifyJob(QueueJob):
    job_id = "notify"
    job_name = "Notify"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class UnregisteredJob(QueueJob):
    job_id = "unregistered"
    job_name = "Unregistered"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


@pytest.fixture
def backend() -> SpyBackend:
    factory = JobFactory()
    for job_class in (NightlyJob, DisabledJob, DisabledBrokenJob, SecondsJob, BrokenCronJob, NotifyJob):
        factory.register(job_class)
    return SpyBackend(factory)


@pytest.fixture
def scheduler(backend: SpyBackend) -> JobScheduler:
    return JobScheduler(backend)


@pytest.mark.asyncio
async def test_schedule_cron_job(scheduler: JobScheduler, backend: SpyBackend) -> None:
    job_id = await scheduler.schedule_cron_job(NightlyJob)
    assert job_id == "nightly"
    assert backend.recurring == {"nightly": "0 3 * * *"}


@pytest.mark.asyncio
async def test_schedule_cron_job_twice_keeps_one_schedule(scheduler: JobScheduler, backend: SpyBackend) -> None:
    await scheduler.schedule_cron_job(NightlyJob)
    await scheduler.schedule_cron_job(NightlyJob)
    assert backend.upserts == 2
    assert list(backend.recurring) == ["nightly"]


@pytest.mark.asyncio
async def test_disabled_cron_job_is_not_registered(scheduler: JobScheduler, backend: SpyBackend) -> None:
    job_id = await scheduler.schedule_cron_job(DisabledJob)
    assert job_id == "disabled"
    assert backend.upserts == 0
    assert backend.recurring == {}


@pytest.mark.asyncio
async def test_disabled_cron_job_skips_expression_check(scheduler: JobScheduler, backend: SpyBackend) -> None:
    assert await scheduler.schedule_cron_job(DisabledBrokenJob) == "disabled-broken"
    assert backend.upserts == 0


@pytest.mark.asyncio
async def test_cron_with_seconds_is_rejected(scheduler: JobScheduler, backend: SpyBackend) -> None:
    with pytest.raises(JobValidationError, match="Unsupported cron expression with seconds"):
        await scheduler.schedule_cron_job(SecondsJob)
    assert backend.recurring == {}


@pytest.mark.asyncio
async def test_invalid_cron_is_rejected(scheduler: JobScheduler) -> None:
    with pytest.raises(JobValidationError, match="Invalid cron expression"):
        await scheduler.schedule_cron_job(BrokenCronJob)


@pytest.mark.asyncio
async def test_enqueue_job(scheduler: JobScheduler, backend: SpyBackend) -> None:
    data = {"recipientEmail": "ann@example.com"}
    tracking_id = await scheduler.enqueue_job(NotifyJob, data, user_id="u1", tenant_id="t1")

    assert tracking_id == "track-1"
    job_id, context, delay = backend.submitted[0]
    assert job_id == "notify"
    assert delay is None
    assert context.job_name == "Notify"
    assert context.data == data
    assert context.user_id == "u1"
    assert context.tenant_id == "t1"
    assert context.job_id != tracking_id


@pytest.mark.asyncio
async def test_enqueue_job_builds_fresh_context(scheduler: JobScheduler, backend: SpyBackend) -> None:
    data = {"taskId": "1"}
    await scheduler.enqueue_job(NotifyJob, data)
    await scheduler.enqueue_job(NotifyJob, data)

    first, second = backend.submitted[0][1], backend.submitted[1][1]
    assert first.job_id != second.job_id
    data["taskId"] = "2"
    assert first.data == {"taskId": "1"}


@pytest.mark.asyncio
async def test_enqueue_unregistered_job(scheduler: JobScheduler, backend: SpyBackend) -> None:
    with pytest.raises(JobResolutionError):
        await scheduler.enqueue_job(UnregisteredJob)
    assert backend.submitted == []


@pytest.mark.asyncio
async def test_schedule_job(scheduler: JobScheduler, backend: SpyBackend) -> None:
    run_at = datetime.now(timezone.utc) + timedelta(hours=1)
    tracking_id = await scheduler.schedule_job(NotifyJob, run_at, {"taskId": "1"})

    assert tracking_id == "track-1"
    _, context, delay = backend.submitted[0]
    assert timedelta(minutes=59) < delay <= timedelta(hours=1)
    assert context.data == {"taskId": "1"}


@pytest.mark.asyncio
async def test_schedule_job_naive_datetime_is_utc(scheduler: JobScheduler, backend: SpyBackend) -> None:
    run_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=10)
    await scheduler.schedule_job(NotifyJob, run_at)

    _, _, delay = backend.submitted[0]
    assert timedelta(minutes=9) < delay <= timedelta(minutes=10)


@pytest.mark.asyncio
async def test_schedule_job_in_the_past(scheduler: JobScheduler, backend: SpyBackend) -> None:
    run_at = datetime.now(timezone.utc) - timedelta(seconds=5)
    with pytest.raises(JobValidationError, match="delay_until must be in the future"):
        await scheduler.schedule_job(NotifyJob, run_at)
    assert backend.submitted == []


@pytest.mark.asyncio
async def test_backend_failure_is_wrapped(scheduler: JobScheduler, backend: SpyBackend) -> None:
    cause = ConnectionError("broker unreachable")
    backend.fail_with = cause

    with pytest.raises(BackendError) as exc_info:
        await scheduler.enqueue_job(NotifyJob)
    assert exc_info.value.__cause__ is cause

    with pytest.raises(BackendError):
        await scheduler.schedule_cron_job(NightlyJob)


@pytest.mark.asyncio
async def test_cancel_job(scheduler: JobScheduler) -> None:
    tracking_id = await scheduler.enqueue_job(NotifyJob)
    assert await scheduler.cancel_job(tracking_id) is True
    assert await scheduler.cancel_job(tracking_id) is False
    assert await scheduler.cancel_job("nope") is False


@pytest.mark.asyncio
async def test_get_job_status(scheduler: JobScheduler, backend: SpyBackend) -> None:
    queued = await scheduler.enqueue_job(NotifyJob)
    waiting = await scheduler.schedule_job(NotifyJob, datetime.now(timezone.utc) + timedelta(hours=1))
    backend.states["odd"] = "something-else"

    assert await scheduler.get_job_status(queued) == JobStatus.ENQUEUED
    assert await scheduler.get_job_status(waiting) == JobStatus.AWAITING
    assert await scheduler.get_job_status("odd") is None
    assert await scheduler.get_job_status("unknown") is None


@pytest.mark.asyncio
async def test_get_job_status_backend_failure(scheduler: JobScheduler, backend: SpyBackend) -> None:
    backend.fail_with = TimeoutError("redis timeout")
    with pytest.raises(BackendError):
        await scheduler.get_job_status("track-1")


@pytest.mark.asyncio
async def test_pause_and_resume(scheduler: JobScheduler, backend: SpyBackend) -> None:
    await scheduler.pause_scheduler()
    assert backend.paused
    await scheduler.resume_scheduler()
    assert not backend.paused
