from .context import JobExecutionContext
from .result import JobResult
from .job import JobStatus, JobKind, JobRecord, RecordState

__all__ = ["JobExecutionContext", "JobResult", "JobStatus", "JobKind", "JobRecord", "RecordState"]
