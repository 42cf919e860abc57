import asyncio
import logging
from task_jobs.backends.celery import create_celery_app
from task_jobs.bootstrap import create_scheduler, initialize_background_jobs
from task_jobs.config import SchedulerSettings
from task_jobs.jobs.queue import SendEmailQueueJob

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

settings = SchedulerSettings(
    backend="celery",
    celery_broker_url="redis://localhost:6379/2",
    celery_result_backend="redis://localhost:6379/3",
    lock_redis_url="redis://localhost:6379/1",
)

# Workers import this module too, so the job tasks get registered on the app
celery_app = create_celery_app(settings.celery_broker_url, settings.celery_result_backend)
scheduler = create_scheduler(settings, celery_app=celery_app)

async def main() -> None:
    await scheduler.backend.start()
    await initialize_background_jobs(scheduler)

    tracking_id = await scheduler.enqueue_job(
        SendEmailQueueJob, {"recipientEmail": "a@b.com", "subject": "Welcome", "body": "Hello!"}
    )
    for _ in range(50):
        status = await scheduler.get_job_status(tracking_id)
        print(f"Job {tracking_id}: {status}")
        if status is not None and status.value in ("Succeeded", "Failed"):
            break
        await asyncio.sleep(0.2)

    # Keep the process alive so the recurring schedules keep firing
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.backend.stop()

if __name__ == "__main__":
    # create worker in other thread
    import threading
    def start_worker() -> None:
        import os
        os.system("celery -A examples.celery_backend.celery_app worker -P solo --loglevel=info")

    worker_thread = threading.Thread(target=start_worker, daemon=True)
    worker_thread.start()

    asyncio.run(main())
