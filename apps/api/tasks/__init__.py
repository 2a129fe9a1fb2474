"""
Celery tasks for background processing.

Tasks are defined here and imported by both the API (to enqueue) and
the worker (to execute).
"""
from celery import Celery
from core.config import settings

# Create Celery app instance
celery_app = Celery(
    "habit_analytics",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # recomputes are small; 5 minutes max
    task_soft_time_limit=4 * 60,
    task_acks_late=False,  # at-most-once: a lost recompute is recomputed on a later trigger
)

# Import tasks to register them
from . import correlation_tasks  # noqa: E402

__all__ = ["celery_app"]
