"""
Habit Correlation API Router

Exposes the habit-pair correlation cache:
- /insights is the fast path (cache only, never computes)
- / computes synchronously on a cache miss and caches the result
- /recalculate runs the gated trigger on demand
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from core.auth import get_current_user_id
from core.database import get_db
from schemas import CorrelationResponse
from services.correlation_cache import get_correlation_insights, get_fast_correlation_insights
from services.correlation_engine import MAX_RESULTS
from services.correlation_trigger import trigger_correlation_update

router = APIRouter(prefix="/v1/correlations", tags=["correlations"])


@router.get("", response_model=List[CorrelationResponse])
def list_correlations(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    habits: Optional[List[str]] = Query(None, description="Only pairs mentioning these habit names"),
    limit: int = Query(MAX_RESULTS, ge=1, le=MAX_RESULTS),
):
    """
    Strongest habit-pair correlations.

    Served from the cache when it is fresh; otherwise computed over the last
    60 days (pairs need 14 valid days) and cached for a week.
    """
    insights = get_correlation_insights(db, user_id, relevant_habits=habits, max_insights=limit)
    return [c.to_dict() for c in insights]


@router.get("/insights", response_model=List[CorrelationResponse])
def fast_insights(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    habits: Optional[List[str]] = Query(None),
    limit: int = Query(2, ge=1, le=MAX_RESULTS),
):
    """Cached insights only. Returns [] when nothing is cached yet."""
    insights = get_fast_correlation_insights(db, user_id, relevant_habits=habits, max_insights=limit)
    return [c.to_dict() for c in insights]


@router.post("/recalculate")
def recalculate(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Run the recompute trigger now.

    The usual gate still applies (6 new events, 14 total, 3 days apart).
    """
    return trigger_correlation_update(db, user_id)
