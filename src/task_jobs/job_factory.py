from typing import Callable, Dict, List, Optional, Type, TypeVar

from task_jobs.errors import JobResolutionError
from task_jobs.jobs.base import BaseJob

J = TypeVar("J", bound=BaseJob)

JobProvider = Callable[[], BaseJob]


class JobFactory:
    """
    Registry that resolves job instances by job class or by stable job id.
    """
    def __init__(self):
        self._classes: Dict[str, Type[BaseJob]] = {}
        self._providers: Dict[Type[BaseJob], JobProvider] = {}

    @property
    def registered_jobs(self) -> List[Type[BaseJob]]:
        return list(self._classes.values())

    def register(self, job_class: Type[BaseJob], provider: Optional[JobProvider] = None) -> None:
        """
        Register a job class.

        Args:
            job_class (Type[BaseJob]): The job class to register.
            provider (Optional[JobProvider]): Zero-argument callable building
                instances. Defaults to the class constructor.
        """
        job_id = getattr(job_class, "job_id", None)
        if not job_id:
            raise ValueError(f"Job class '{job_class.__name__}' does not declare a job_id")
        existing = self._classes.get(job_id)
        if existing is not None and existing is not job_class:
            raise ValueError(f"A job with id '{job_id}' is already registered by '{existing.__name__}'")
        self._classes[job_id] = job_class
        self._providers[job_class] = provider or job_class

    def is_registered(self, job_class: Type[BaseJob]) -> bool:
        return job_class in self._providers

    def resolve(self, job_class: Type[J]) -> J:
        """
        Build a fresh instance of a registered job class.

        Raises:
            JobResolutionError: If the class is not registered or cannot be built.
        """
        provider = self._providers.get(job_class)
        if provider is None:
            raise JobResolutionError(getattr(job_class, "__name__", str(job_class)), "not registered")
        return self._build(job_class.__name__, provider)

    def resolve_by_id(self, job_id: str) -> BaseJob:
        job_class = self._classes.get(job_id)
        if job_class is None:
            raise JobResolutionError(job_id, "no job registered with this id")
        return self._build(job_class.__name__, self._providers[job_class])

    def _build(self, name: str, provider: JobProvider) -> BaseJob:
        try:
            job = provider()
        except Exception as e:
            raise JobResolutionError(name, str(e)) from e
        if not isinstance(job, BaseJob):
            raise JobResolutionError(name, f"provider returned {type(job).__name__}")
        return job
