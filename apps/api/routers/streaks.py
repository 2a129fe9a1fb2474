"""
Habit Streak API Router
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from core.auth import get_current_user_id
from core.database import get_db
from schemas import HabitStreakResponse, UserStreakSummaryResponse
from services.habit_streaks import (
    calculate_habit_streak,
    calculate_user_streaks,
    get_streak_leaderboard,
    local_today,
)

router = APIRouter(prefix="/v1/streaks", tags=["streaks"])

TIMEZONE_OFFSET_QUERY = Query(None, ge=-14 * 60, le=14 * 60, description="Minutes east of UTC")


@router.get("/summary", response_model=UserStreakSummaryResponse)
def streak_summary(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    timezone_offset: Optional[int] = TIMEZONE_OFFSET_QUERY,
):
    """Streak totals across the user's active habits."""
    summary = calculate_user_streaks(db, user_id, today=local_today(timezone_offset))
    return summary.to_dict()


@router.get("/leaderboard")
def streak_leaderboard(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    limit: int = Query(10, ge=1, le=50),
    timezone_offset: Optional[int] = TIMEZONE_OFFSET_QUERY,
):
    return get_streak_leaderboard(db, user_id, limit=limit, today=local_today(timezone_offset))


@router.get("/habits/{habit_id}", response_model=HabitStreakResponse)
def habit_streak(
    habit_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    timezone_offset: Optional[int] = TIMEZONE_OFFSET_QUERY,
):
    streak = calculate_habit_streak(db, habit_id, user_id, today=local_today(timezone_offset))
    return streak.to_dict()
