from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from task_jobs.domain.result import JobResult


class SchedulerError(Exception):
    """Base exception for all job scheduling errors."""
    pass


class JobValidationError(SchedulerError, ValueError):
    """Raised when job input is missing or malformed (e.g. a past delay_until)."""
    pass


class JobResolutionError(SchedulerError, LookupError):
    """Raised when a job type cannot be found or instantiated."""

    def __init__(self, job: str, reason: Optional[str] = None):
        self.job = job
        message = f"Could not resolve job '{job}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class BackendError(SchedulerError):
    """Raised when communication with the execution backend fails."""
    pass


class JobExecutionError(SchedulerError):
    """
    A failed job attempt.

    Passed to QueueJob.on_retry and raised by workers once a job has no
    attempts left, so the backend records the run as failed.
    """

    def __init__(self, message: str, result: Optional["JobResult"] = None):
        super().__init__(message)
        self.result = result
