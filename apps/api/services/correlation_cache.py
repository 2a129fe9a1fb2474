"""
Correlation Cache

Stores the latest correlation results per user so chat and UI reads never
pay the O(habits^2) computation inline.

Principles:
    - One row per user, overwritten wholesale (last writer wins). The cache
      is derived and fully recomputable, so concurrent writers for the same
      user may clobber each other without harm.
    - Fixed TTL: a row is valid for 7 days after calculation; an expired
      row reads as absent.
    - Reads never mutate the row.
    - The fast path never computes. On a miss it returns [] and leaves the
      recompute to the trigger policy.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from models import CorrelationCache
from services.correlation_engine import CorrelationResult, calculate_habit_correlations

logger = logging.getLogger(__name__)

# --- Configuration ---
CACHE_TTL_DAYS = 7

# Default caps for insight lists.
FAST_INSIGHTS_DEFAULT = 2
INSIGHTS_DEFAULT = 3


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _get_cache_row(db: Session, user_id: str) -> Optional[CorrelationCache]:
    return (
        db.query(CorrelationCache)
        .filter(CorrelationCache.user_id == user_id)
        .first()
    )


def get_cached_correlations(
    db: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> Optional[List[CorrelationResult]]:
    """Cached correlations, or None when there is no row or it has expired."""
    cache = _get_cache_row(db, user_id)
    if cache is None:
        return None

    now = now or datetime.now(timezone.utc)
    if now > as_utc(cache.valid_until):
        return None

    return [CorrelationResult.from_dict(c) for c in (cache.correlations or [])]


def cache_correlations(
    db: Session,
    user_id: str,
    correlations: List[CorrelationResult],
    now: Optional[datetime] = None,
) -> CorrelationCache:
    """Overwrite the user's cache row (insert on first write)."""
    now = now or datetime.now(timezone.utc)
    valid_until = now + timedelta(days=CACHE_TTL_DAYS)
    payload = [c.to_dict() for c in correlations]

    cache = _get_cache_row(db, user_id)
    if cache is not None:
        cache.correlations = payload
        cache.calculated_at = now
        cache.valid_until = valid_until
    else:
        cache = CorrelationCache(
            user_id=user_id,
            correlations=payload,
            calculated_at=now,
            valid_until=valid_until,
        )
        db.add(cache)

    db.flush()
    logger.info(f"Cached {len(payload)} correlations for {user_id} (valid until {valid_until.isoformat()})")
    return cache


def filter_relevant(
    correlations: List[CorrelationResult],
    relevant_habits: Optional[List[str]],
) -> List[CorrelationResult]:
    """Keep pairs mentioning any relevant habit; an empty filter keeps everything."""
    if not relevant_habits:
        return list(correlations)
    return [c for c in correlations if c.mentions_any(relevant_habits)]


def get_fast_correlation_insights(
    db: Session,
    user_id: str,
    relevant_habits: Optional[List[str]] = None,
    max_insights: int = FAST_INSIGHTS_DEFAULT,
) -> List[CorrelationResult]:
    """
    Cache-only insights with graceful degradation.

    Never computes correlations. Cache misses, expired rows and read
    errors all return [].
    """
    try:
        correlations = get_cached_correlations(db, user_id)
    except Exception as e:
        logger.warning(f"Fast correlation insights unavailable for {user_id}: {e}")
        return []

    if not correlations:
        return []

    return filter_relevant(correlations, relevant_habits)[:max_insights]


def get_correlation_insights(
    db: Session,
    user_id: str,
    relevant_habits: Optional[List[str]] = None,
    max_insights: int = INSIGHTS_DEFAULT,
) -> List[CorrelationResult]:
    """
    Insights with a synchronous fallback: compute and cache on a miss.

    Only for explicit correlation requests; chat uses the fast path.
    """
    correlations = get_cached_correlations(db, user_id)

    if correlations is None:
        correlations = calculate_habit_correlations(db, user_id)
        if correlations:
            cache_correlations(db, user_id, correlations)

    if not correlations:
        return []

    return filter_relevant(correlations, relevant_habits)[:max_insights]
