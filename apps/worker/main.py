"""
Celery worker entry point for background correlation recomputes.

Start from this directory with:
    celery -A main worker --loglevel=info

API_PATH points at the API source tree (apps/api); the container layout
mounts it at /api.
"""
import logging
import os
import sys

API_PATH = os.environ.get(
    "API_PATH",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "api"),
)
sys.path.insert(0, API_PATH)

from celery.signals import worker_ready  # noqa: E402

from core.config import settings  # noqa: E402
from core.database import check_db_connection  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from tasks import celery_app  # noqa: E402

setup_logging()
logger = logging.getLogger(__name__)

app = celery_app


@worker_ready.connect
def log_registered_tasks(sender=None, **kwargs):
    registered = sorted(name for name in celery_app.tasks if not name.startswith("celery."))
    logger.info(
        "Worker ready",
        extra={"extra_fields": {
            "tasks": registered,
            # host part only, no credentials
            "broker": settings.CELERY_BROKER_URL.split("@")[-1],
        }},
    )


@celery_app.task(name="worker.health_check")
def health_check():
    """Liveness check that also reports database reachability."""
    return {"status": "ok", "database": "ok" if check_db_connection() else "unavailable"}
