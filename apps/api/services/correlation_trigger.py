"""
Correlation Recompute Trigger

Decides when a user's cached correlations are worth recomputing after new
habit events. This is a debounced, sample-gated policy, not a schedule: it
never recomputes on every event.

A recompute runs only when ALL hold:
    1. at least NEW_EVENTS_THRESHOLD events were created since the last update
    2. the user has at least MIN_TOTAL_EVENTS events overall
    3. at least MIN_DAYS_BETWEEN_UPDATES days passed since the last update

Triggered recomputes use a relaxed sample gate (10 valid days over 45 days).

Failures are best-effort: logged and dropped. They never fail or roll back
the event write that caused them.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from core.config import settings
from models import CorrelationTriggerTracker, HabitEvent
from services.correlation_cache import as_utc, cache_correlations
from services.correlation_engine import calculate_habit_correlations

logger = logging.getLogger(__name__)

# --- Gate ---
NEW_EVENTS_THRESHOLD = 6
MIN_TOTAL_EVENTS = 14
MIN_DAYS_BETWEEN_UPDATES = 3

# --- Relaxed recompute parameters ---
TRIGGER_MIN_SAMPLE_SIZE = 10
TRIGGER_DAYS_BACK = 45

TRIGGER_MODE_INLINE = "inline"
TRIGGER_MODE_CELERY = "celery"


def _get_tracker(db: Session, user_id: str) -> Optional[CorrelationTriggerTracker]:
    return (
        db.query(CorrelationTriggerTracker)
        .filter(CorrelationTriggerTracker.user_id == user_id)
        .first()
    )


def should_trigger_correlation_update(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Evaluate the gate. The first call for a user creates the tracker and
    returns False.

    New events are counted from created_at; the count is stored on the
    tracker as events_since_update.
    """
    now = now or datetime.now(timezone.utc)
    tracker = _get_tracker(db, user_id)

    if tracker is None:
        db.add(CorrelationTriggerTracker(
            user_id=user_id,
            last_update_at=now,
            events_since_update=0,
            total_events=0,
        ))
        db.flush()
        return False

    new_events = db.query(HabitEvent).filter(
        HabitEvent.user_id == user_id,
        HabitEvent.created_at >= tracker.last_update_at,
    ).count()
    tracker.events_since_update = new_events

    total_events = tracker.total_events + new_events
    days_since_update = (now - as_utc(tracker.last_update_at)).days

    return (
        new_events >= NEW_EVENTS_THRESHOLD
        and total_events >= MIN_TOTAL_EVENTS
        and days_since_update >= MIN_DAYS_BETWEEN_UPDATES
    )


def _reset_tracker(db: Session, user_id: str, now: datetime) -> None:
    tracker = _get_tracker(db, user_id)
    if tracker is None:
        return

    tracker.last_update_at = now
    tracker.events_since_update = 0
    tracker.total_events = db.query(HabitEvent).filter(
        HabitEvent.user_id == user_id,
    ).count()
    db.flush()


def trigger_correlation_update(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Recompute and cache correlations when the gate allows it.

    Writes happen inside a SAVEPOINT; a failed recompute rolls back only
    its own writes and reports {"updated": False}.
    """
    now = now or datetime.now(timezone.utc)

    if not should_trigger_correlation_update(db, user_id, now=now):
        return {"updated": False, "reason": "Not enough new events"}

    try:
        with db.begin_nested():
            correlations = calculate_habit_correlations(
                db,
                user_id,
                min_sample_size=TRIGGER_MIN_SAMPLE_SIZE,
                days_back=TRIGGER_DAYS_BACK,
            )
            cache_correlations(db, user_id, correlations, now=now)
            _reset_tracker(db, user_id, now)
    except Exception as e:
        logger.error(f"Correlation recompute failed for {user_id}: {e}", exc_info=True)
        return {"updated": False, "reason": "Calculation failed"}

    logger.info(f"Correlations recomputed for {user_id}: {len(correlations)} found")
    return {"updated": True, "correlations_found": len(correlations)}


def _enqueue_after_commit(db: Session, user_id: str) -> None:
    """Hand the recompute to the worker once the triggering write commits."""

    def _enqueue(session):
        try:
            from tasks.correlation_tasks import recompute_correlations
            recompute_correlations.delay(user_id)
        except Exception as e:
            logger.warning(f"Could not enqueue correlation recompute for {user_id}: {e}")

    event.listen(db, "after_commit", _enqueue, once=True)


def schedule_correlation_update(db: Session, user_id: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort follow-up to an event write.

    Never raises. Inline mode evaluates the gate in the caller's session
    inside a SAVEPOINT so a failure leaves the caller's write intact.
    """
    try:
        if settings.CORRELATION_TRIGGER_MODE == TRIGGER_MODE_CELERY:
            _enqueue_after_commit(db, user_id)
            return None

        with db.begin_nested():
            return trigger_correlation_update(db, user_id)
    except Exception as e:
        logger.warning(f"Correlation trigger failed (non-critical) for {user_id}: {e}")
        return None
