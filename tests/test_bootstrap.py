from datetime import datetime, timedelta, timezone

import pytest
from celery import Celery

from task_jobs.backends.celery import CeleryBackend
from task_jobs.backends.in_memory import InMemoryBackend
from task_jobs.bootstrap import CRON_JOBS, QUEUE_JOBS, create_scheduler, initialize_background_jobs
from task_jobs.config import SchedulerSettings
from task_jobs.domain.job import JobStatus
from task_jobs.jobs.cron import ProcessTaskReminderCronJob
from task_jobs.jobs.queue import ExportTasksQueueJob, SendTaskNotificationQueueJob
from task_jobs.scheduler import JobScheduler


@pytest.fixture(autouse=True)
def no_latency(monkeypatch):
    monkeypatch.setattr("task_jobs.jobs.sample_data.SIMULATED_LATENCY", 0)


@pytest.fixture
def settings(tmp_path) -> SchedulerSettings:
    return SchedulerSettings(backend="memory", export_dir=str(tmp_path), max_workers=2, poll_interval_seconds=0.05)


@pytest.fixture
def scheduler(settings: SchedulerSettings) -> JobScheduler:
    return create_scheduler(settings)


def test_create_scheduler_registers_bundled_jobs(scheduler: JobScheduler, settings: SchedulerSettings):
    assert isinstance(scheduler.backend, InMemoryBackend)
    assert scheduler.backend.max_workers == 2
    assert set(scheduler.job_factory.registered_jobs) == set(CRON_JOBS) | set(QUEUE_JOBS)

    reminder = scheduler.job_factory.resolve(ProcessTaskReminderCronJob)
    assert reminder.scheduler is scheduler
    export = scheduler.job_factory.resolve(ExportTasksQueueJob)
    assert export.export_dir == settings.export_dir


def test_create_scheduler_with_celery(settings: SchedulerSettings):
    app = Celery("test", broker="memory://", backend="cache+memory://")
    celery_settings = settings.model_copy(update={"backend": "celery"})
    scheduler = create_scheduler(celery_settings, celery_app=app)

    assert isinstance(scheduler.backend, CeleryBackend)
    assert scheduler.backend.app is app
    assert scheduler.backend.lock_url == celery_settings.lock_redis_url


@pytest.mark.asyncio
async def test_initialize_background_jobs(scheduler: JobScheduler):
    job_ids = await initialize_background_jobs(scheduler)

    assert job_ids == ["cleanup-old-tasks", "process-task-reminders-cron", "generate-daily-report-cron"]
    assert scheduler.backend.recurring == {
        "cleanup-old-tasks": "0 2 * * *",
        "process-task-reminders-cron": "0 9 * * *",
        "generate-daily-report-cron": "0 17 * * 1-5",
    }

    await initialize_background_jobs(scheduler)
    assert len(scheduler.backend.recurring) == 3


@pytest.mark.asyncio
async def test_notification_end_to_end(scheduler: JobScheduler):
    data = {"taskId": "42", "taskTitle": "Write spec", "notificationType": "Created", "recipientEmail": "a@b.com"}
    tracking_id = await scheduler.enqueue_job(SendTaskNotificationQueueJob, data)
    assert await scheduler.get_job_status(tracking_id) == JobStatus.ENQUEUED

    await scheduler.backend.run_pending()

    assert await scheduler.get_job_status(tracking_id) == JobStatus.SUCCEEDED
    record = await scheduler.backend.storage.get_record(tracking_id)
    assert record.context.job_id != tracking_id
    assert record.result.success
    assert "a@b.com" in record.result.message
    assert record.result.result_data == {"SentTo": "a@b.com", "NotificationType": "Created"}


@pytest.mark.asyncio
async def test_notification_missing_recipient_end_to_end(scheduler: JobScheduler):
    tracking_id = await scheduler.enqueue_job(SendTaskNotificationQueueJob, {"taskId": "42"})
    await scheduler.backend.run_pending()

    assert await scheduler.get_job_status(tracking_id) == JobStatus.FAILED
    record = await scheduler.backend.storage.get_record(tracking_id)
    assert record.attempts == 1
    assert not record.result.success
    assert record.result.error_message == "recipientEmail is required"


@pytest.mark.asyncio
async def test_unknown_tracking_id_end_to_end(scheduler: JobScheduler):
    assert await scheduler.get_job_status("job_does_not_exist") is None


@pytest.mark.asyncio
async def test_reminder_cron_enqueues_notifications(scheduler: JobScheduler):
    backend = scheduler.backend
    await backend.add_or_update_recurring(ProcessTaskReminderCronJob.job_id, ProcessTaskReminderCronJob.cron_expression)
    await backend.dispatch_due(datetime.now(timezone.utc) + timedelta(days=1))
    await backend.run_pending()

    reminders = await backend.storage.list_records(job_id=ProcessTaskReminderCronJob.job_id)
    assert len(reminders) == 1
    assert reminders[0].result.result_data == {"RemindersQueued": 2}

    notifications = await backend.storage.list_records(job_id=SendTaskNotificationQueueJob.job_id)
    assert len(notifications) == 2
    assert all(r.result.success for r in notifications)
    assert {r.result.result_data["NotificationType"] for r in notifications} == {"Reminder"}
