"""
Background Job System

This package defines the background-job contract of the task management
service and the scheduler that runs jobs on a durable backend.

Core Concepts:

Job:
    A Job describes a unit of background work. It is either a CronJob,
    executed on a recurring UTC cron schedule, or a QueueJob, executed once
    per enqueue call and retried on failure. A Job declares its identity and
    policy and implements `execute`; it does not represent an execution.

Execution:
    A single run of a Job. Each execution receives its own
    JobExecutionContext (execution id, payload, user and tenant) and
    produces a JobResult describing the outcome of that attempt.

Scheduler:
    The JobScheduler is the only entry point for application code. It
    resolves jobs through the JobFactory and hands them to a backend, which
    persists submissions, runs attempts and applies the retry policy.

Relationships:
    - A Job can have many executions, each with its own context and result.
    - A QueueJob execution can span several attempts; every attempt yields a JobResult.
"""

from .domain import JobExecutionContext, JobResult, JobStatus
from .errors import BackendError, JobExecutionError, JobResolutionError, JobValidationError, SchedulerError
from .job_factory import JobFactory
from .jobs import BaseJob, CronJob, QueueJob
from .scheduler import JobScheduler

__all__ = [
    "JobExecutionContext",
    "JobResult",
    "JobStatus",
    "BaseJob",
    "CronJob",
    "QueueJob",
    "JobFactory",
    "JobScheduler",
    "SchedulerError",
    "JobValidationError",
    "JobResolutionError",
    "BackendError",
    "JobExecutionError",
]
