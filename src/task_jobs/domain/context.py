import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobExecutionContext(BaseModel):
    """
    Input bundle handed to a job for a single execution.
    """
    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique identifier of this execution")
    job_name: str = Field(default="", description="Name of the job being executed")
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the context was created, in UTC"
    )
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Caller-supplied payload interpreted by the job. Stored and sent as JSON, so datetimes "
                    "arrive as ISO 8601 strings and tuples as lists"
    )
    user_id: Optional[str] = Field(default=None, description="User the execution is attributed to")
    tenant_id: Optional[str] = Field(default=None, description="Tenant the execution is attributed to")

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Return data[key] as a stripped string, or default when it is absent, None or empty.

        Payloads pass through JSON before a job sees them: a datetime given at
        submission comes back here as its ISO 8601 string.
        """
        value = self.data.get(key)
        if value is None:
            return default
        text = str(value).strip()
        return text or default
