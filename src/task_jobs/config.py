"""Configuration settings for the background job system."""

import os
import tempfile
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Job scheduler configuration, read from TASK_JOBS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TASK_JOBS_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    backend: Literal["memory", "celery"] = Field(
        default="memory", description="Execution backend: in-process asyncio or Celery workers"
    )

    # In-memory backend
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Async SQLAlchemy URL where the in-memory backend keeps job records",
    )
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    max_workers: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)

    # Celery backend
    celery_broker_url: str = "redis://localhost:6379/2"
    celery_result_backend: str = "redis://localhost:6379/3"
    lock_redis_url: str = Field(
        default="redis://localhost:6379/1",
        description="Redis holding the locks that keep recurring jobs from overlapping",
    )
    cron_lock_timeout_seconds: int = Field(default=3600, ge=1)

    # Jobs
    export_dir: str = Field(
        default_factory=tempfile.gettempdir, description="Directory where task exports are written"
    )


@lru_cache
def get_settings() -> SchedulerSettings:
    return SchedulerSettings()
