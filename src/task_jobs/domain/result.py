import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobResult(BaseModel):
    """
    Outcome of a single job attempt.
    """
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str = Field(..., description="Human-readable summary of the attempt")
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration of the attempt")
    retry_count: int = Field(default=0, ge=0, description="Attempts consumed before this one")
    result_data: Optional[Any] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    retryable: bool = Field(default=True, description="Whether a failed attempt may be retried")

    @model_validator(mode="after")
    def check_error_fields(self) -> "JobResult":
        if self.success and (self.error_message is not None or self.stack_trace is not None):
            raise ValueError("A successful result cannot carry error details")
        if not self.success and self.error_message is None:
            raise ValueError("A failed result must carry an error message")
        return self

    @classmethod
    def succeeded(cls, message: str, duration_ms: int = 0, data: Optional[Any] = None) -> "JobResult":
        return cls(success=True, message=message, duration_ms=duration_ms, result_data=data)

    @classmethod
    def failed(
        cls,
        message: str,
        error_message: str,
        stack_trace: Optional[str] = None,
        duration_ms: int = 0,
    ) -> "JobResult":
        return cls(
            success=False,
            message=message,
            error_message=error_message,
            stack_trace=stack_trace,
            duration_ms=duration_ms,
        )

    @classmethod
    def invalid(cls, message: str, error_message: str, duration_ms: int = 0) -> "JobResult":
        """
        Failed result for bad job input. Never retried.
        """
        return cls(
            success=False,
            message=message,
            error_message=error_message,
            duration_ms=duration_ms,
            retryable=False,
        )

    @classmethod
    def from_exception(cls, message: str, exc: BaseException, duration_ms: int = 0) -> "JobResult":
        stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls.failed(message, str(exc) or type(exc).__name__, stack_trace, duration_ms)

    def with_retry_count(self, retry_count: int) -> "JobResult":
        return self.model_copy(update={"retry_count": retry_count})
