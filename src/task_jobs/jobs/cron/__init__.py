from .cleanup import CleanupOldTasksCronJob
from .daily_report import GenerateDailyReportCronJob
from .task_reminder import ProcessTaskReminderCronJob

__all__ = ["CleanupOldTasksCronJob", "GenerateDailyReportCronJob", "ProcessTaskReminderCronJob"]
