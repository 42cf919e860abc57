from .base import BaseBackend
from .in_memory import InMemoryBackend
from .celery import CeleryBackend, create_celery_app

__all__ = ["BaseBackend", "InMemoryBackend", "CeleryBackend", "create_celery_app"]
