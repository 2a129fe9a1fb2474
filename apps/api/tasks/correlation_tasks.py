"""
Celery task for correlation recomputes.

Enqueued after a habit event write commits (CORRELATION_TRIGGER_MODE=celery).
The consumer evaluates the same gate as the inline path, so an enqueued job
that arrives too early is a cheap no-op. At-most-once: no retries.
"""
from typing import Dict
import logging

from celery import Task
from sqlalchemy.orm import Session

from core.database import get_db_sync
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.recompute_correlations", bind=True, max_retries=0)
def recompute_correlations(self: Task, user_id: str) -> Dict:
    """
    Gate-checked correlation recompute for one user.

    Args:
        user_id: Opaque user id

    Returns:
        Trigger result dict ({"updated": bool, ...}) or an error status
    """
    from services.correlation_trigger import trigger_correlation_update

    db: Session = get_db_sync()
    try:
        result = trigger_correlation_update(db, user_id)
        db.commit()
        return result
    except Exception as e:
        db.rollback()
        logger.error(f"Correlation recompute task failed for {user_id}: {e}", exc_info=True)
        return {"updated": False, "status": "error", "error": str(e)}
    finally:
        db.close()
