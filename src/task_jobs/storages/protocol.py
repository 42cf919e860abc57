from typing import List, Optional, Protocol
from task_jobs.domain.job import JobRecord

class Storage(Protocol):
    async def create_record(self, record: JobRecord) -> str:
        """Persist a new job record and return its tracking ID."""
        ...

    async def get_record(self, tracking_id: str) -> Optional[JobRecord]:
        """Retrieve a job record by its tracking ID."""
        ...

    async def update_record(self, record: JobRecord) -> bool:
        """Update an existing record. Return True if successful, False otherwise."""
        ...

    async def list_records(self, job_id: Optional[str] = None, limit: int = 100) -> List[JobRecord]:
        """List records, optionally for one job id, newest first."""
        ...

    async def list_waiting(self) -> List[JobRecord]:
        """List records that are scheduled, enqueued or retrying, oldest first."""
        ...
