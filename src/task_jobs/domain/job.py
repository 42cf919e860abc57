import uuid
from enum import Enum
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .context import JobExecutionContext
from .result import JobResult


class JobStatus(str, Enum):
    """
    Backend-independent status of a submitted job.
    """
    ENQUEUED = "Enqueued"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    DELETED = "Deleted"
    AWAITING = "Awaiting"


class JobKind(str, Enum):
    QUEUE = "queue"
    CRON = "cron"


class RecordState(str, Enum):
    """
    Native states of a job record kept by the in-memory backend.
    """
    SCHEDULED = "scheduled"
    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DELETED = "deleted"
    SKIPPED = "skipped"


FINAL_STATES = (RecordState.SUCCEEDED, RecordState.FAILED, RecordState.DELETED, RecordState.SKIPPED)
WAITING_STATES = (RecordState.SCHEDULED, RecordState.ENQUEUED, RecordState.RETRYING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRecord(BaseModel):
    """
    A submitted job as tracked by a backend.
    """
    tracking_id: str = Field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}", description="Backend tracking id")
    job_id: str = Field(..., description="Stable id of the job descriptor")
    job_name: str
    kind: JobKind = JobKind.QUEUE
    state: RecordState = RecordState.ENQUEUED
    context: JobExecutionContext
    scheduled_for: Optional[datetime] = Field(None, description="Earliest time the job may run")
    attempts: int = Field(default=0, ge=0)
    result: Optional[JobResult] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_final(self) -> bool:
        return self.state in FINAL_STATES

    def set_state(self, state: RecordState) -> None:
        self.state = state
        self.updated_at = _utcnow()

    def set_result(self, result: JobResult, state: Optional[RecordState] = None) -> None:
        """
        Record the outcome of the latest attempt.
        """
        if state is None:
            state = RecordState.SUCCEEDED if result.success else RecordState.FAILED
        self.result = result
        self.set_state(state)
