from .email import SendEmailQueueJob
from .export_tasks import ExportTasksQueueJob
from .task_notification import SendTaskNotificationQueueJob

__all__ = ["SendEmailQueueJob", "ExportTasksQueueJob", "SendTaskNotificationQueueJob"]
