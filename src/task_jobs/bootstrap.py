import logging
from typing import Iterable, List, Optional, Type

from celery import Celery

from task_jobs.backends.base import BaseBackend
from task_jobs.backends.celery import CeleryBackend, create_celery_app
from task_jobs.backends.in_memory import InMemoryBackend
from task_jobs.config import SchedulerSettings, get_settings
from task_jobs.job_factory import JobFactory
from task_jobs.jobs.base import CronJob, QueueJob, describe
from task_jobs.jobs.cron import CleanupOldTasksCronJob, GenerateDailyReportCronJob, ProcessTaskReminderCronJob
from task_jobs.jobs.queue import ExportTasksQueueJob, SendEmailQueueJob, SendTaskNotificationQueueJob
from task_jobs.scheduler import JobScheduler
from task_jobs.storages.sqlalchemy import InMemoryStorage, SqlAlchemyStorage

logger = logging.getLogger(__name__)

CRON_JOBS: tuple = (
    CleanupOldTasksCronJob,
    ProcessTaskReminderCronJob,
    GenerateDailyReportCronJob,
)

QUEUE_JOBS: tuple = (
    SendEmailQueueJob,
    SendTaskNotificationQueueJob,
    ExportTasksQueueJob,
)


def register_default_jobs(
    factory: JobFactory,
    settings: SchedulerSettings,
    scheduler: Optional[JobScheduler] = None,
) -> None:
    """
    Register the bundled jobs. Jobs with collaborators get a provider that
    injects them.
    """
    factory.register(CleanupOldTasksCronJob)
    factory.register(ProcessTaskReminderCronJob, lambda: ProcessTaskReminderCronJob(scheduler))
    factory.register(GenerateDailyReportCronJob)
    factory.register(SendEmailQueueJob)
    factory.register(SendTaskNotificationQueueJob)
    factory.register(ExportTasksQueueJob, lambda: ExportTasksQueueJob(settings.export_dir))


def create_backend(
    settings: SchedulerSettings,
    factory: JobFactory,
    celery_app: Optional[Celery] = None,
) -> BaseBackend:
    if settings.backend == "celery":
        app = celery_app or create_celery_app(settings.celery_broker_url, settings.celery_result_backend)
        return CeleryBackend(
            factory,
            app,
            lock_url=settings.lock_redis_url,
            lock_timeout=settings.cron_lock_timeout_seconds,
        )

    if settings.database_url == "sqlite+aiosqlite:///:memory:":
        storage = InMemoryStorage()
    else:
        storage = SqlAlchemyStorage(settings.database_url)
    return InMemoryBackend(
        factory,
        storage,
        poll_interval=settings.poll_interval_seconds,
        max_workers=settings.max_workers,
    )


def create_scheduler(
    settings: Optional[SchedulerSettings] = None,
    celery_app: Optional[Celery] = None,
) -> JobScheduler:
    """
    Build a JobScheduler with the bundled jobs registered on the backend
    selected by settings. The backend still has to be started.
    """
    settings = settings or get_settings()
    factory = JobFactory()
    backend = create_backend(settings, factory, celery_app)
    scheduler = JobScheduler(backend)
    register_default_jobs(factory, settings, scheduler)
    logger.info(f"Created {type(backend).__name__} with {len(factory.registered_jobs)} registered jobs")
    return scheduler


async def initialize_background_jobs(
    scheduler: JobScheduler,
    cron_jobs: Iterable[Type[CronJob]] = CRON_JOBS,
) -> List[str]:
    """
    Schedule every recurring job. Called once at application startup.

    Returns:
        List[str]: Ids of the processed cron jobs.
    """
    logger.info("Initializing background jobs...")
    job_ids = []
    try:
        for job_class in cron_jobs:
            job_ids.append(await scheduler.schedule_cron_job(job_class))
    except Exception:
        logger.exception("Failed to initialize background jobs")
        raise

    for job_class in scheduler.job_factory.registered_jobs:
        logger.info(f"Registered job: {describe(job_class)}")
    queue_jobs = [c for c in scheduler.job_factory.registered_jobs if issubclass(c, QueueJob)]
    logger.info(f"Background jobs initialized: {len(job_ids)} cron jobs, {len(queue_jobs)} queue jobs")
    return job_ids
