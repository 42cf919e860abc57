import asyncio
import logging
from datetime import datetime, timedelta, timezone
from task_jobs.bootstrap import create_scheduler, initialize_background_jobs
from task_jobs.config import SchedulerSettings
from task_jobs.jobs.queue import ExportTasksQueueJob, SendTaskNotificationQueueJob

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Set up the scheduler on the in-process backend
settings = SchedulerSettings(backend="memory", poll_interval_seconds=0.2)
scheduler = create_scheduler(settings)

async def wait_for(tracking_id: str, timeout: float = 5.0):
    for _ in range(int(timeout / 0.1)):
        status = await scheduler.get_job_status(tracking_id)
        if status is not None and status.value in ("Succeeded", "Failed", "Deleted"):
            return status
        await asyncio.sleep(0.1)
    return await scheduler.get_job_status(tracking_id)

async def main():
    await scheduler.backend.start()
    await initialize_background_jobs(scheduler)

    notification_id = await scheduler.enqueue_job(
        SendTaskNotificationQueueJob,
        {"taskId": "42", "taskTitle": "Write docs", "notificationType": "Created", "recipientEmail": "a@b.com"},
    )
    export_id = await scheduler.enqueue_job(
        ExportTasksQueueJob,
        {"userId": "user-1", "userEmail": "a@b.com", "filters": "overdue", "format": "csv"},
        user_id="user-1",
    )
    later_id = await scheduler.schedule_job(
        SendTaskNotificationQueueJob,
        datetime.now(timezone.utc) + timedelta(hours=1),
        {"taskId": "43", "recipientEmail": "a@b.com"},
    )

    print(f"Notification {notification_id}: {await wait_for(notification_id)}")
    print(f"Export {export_id}: {await wait_for(export_id)}")
    print(f"Scheduled {later_id}: {await scheduler.get_job_status(later_id)}")
    print(f"Cancelled {later_id}: {await scheduler.cancel_job(later_id)}")

    await scheduler.backend.stop()

if __name__ == "__main__":
    asyncio.run(main())
