from .base import BaseJob, CronJob, QueueJob

__all__ = ["BaseJob", "CronJob", "QueueJob"]
