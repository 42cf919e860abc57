import logging
from datetime import timedelta

import pytest

from task_jobs.domain.context import JobExecutionContext
from task_jobs.domain.result import JobResult
from task_jobs.errors import JobValidationError
from task_jobs.jobs.base import BaseJob, CronJob, QueueJob, describe


class PlainQueueJob(QueueJob):
    job_id = "plain-queue"
    job_name = "Plain Queue"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


class PlainCronJob(CronJob):
    job_id = "plain-cron"
    job_name = "Plain Cron"
    cron_expression = "0 2 * * *"

    async def execute(self, context: JobExecutionContext) -> JobResult:
        return JobResult.succeeded("ok")


def test_defaults():
    assert PlainQueueJob.max_retry_attempts == 3
    assert PlainQueueJob.execution_timeout == timedelta(minutes=5)
    assert PlainCronJob.is_enabled is True


@pytest.mark.asyncio
async def test_can_execute_defaults_to_true():
    assert await PlainQueueJob().can_execute() is True


@pytest.mark.asyncio
@pytest.mark.parametrize("attempt, seconds", [(1, 1), (2, 2), (3, 4), (4, 8)])
async def test_default_retry_backoff(attempt, seconds):
    delay = await PlainQueueJob().on_retry(attempt, RuntimeError("boom"))
    assert delay == timedelta(seconds=seconds)


@pytest.mark.asyncio
async def test_on_completed_logs_by_outcome(caplog):
    job = PlainQueueJob()
    with caplog.at_level(logging.INFO, logger="task_jobs.jobs.base"):
        await job.on_completed(JobResult.succeeded("all good"))
        await job.on_completed(JobResult.failed("bad", "smtp down").with_retry_count(2))

    levels = [(r.levelno, r.getMessage()) for r in caplog.records]
    assert (logging.INFO, "Plain Queue completed: all good") in levels
    assert (logging.ERROR, "Plain Queue failed after 2 retries: smtp down") in levels


def test_require():
    context = JobExecutionContext(data={"taskId": " 42 ", "empty": ""})
    assert BaseJob.require(context, "taskId") == "42"
    with pytest.raises(JobValidationError, match="empty is required"):
        BaseJob.require(context, "empty")
    with pytest.raises(JobValidationError, match="recipientEmail is required"):
        BaseJob.require(context, "recipientEmail")


def test_describe():
    assert describe(PlainCronJob) == "Plain Cron (plain-cron, cron '0 2 * * *')"
    assert describe(PlainQueueJob()) == "Plain Queue (plain-queue, 3 retries)"
    assert repr(PlainQueueJob()) == "<PlainQueueJob job_id='plain-queue'>"
