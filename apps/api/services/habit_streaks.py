"""
Habit Streak Service

Daily streaks per habit plus a summary across a user's active habits.

A day counts toward a streak only when the habit has an event for that exact
calendar date with status "completed". Missing days and skipped / failed /
not_marked days all break a run; there is no partial credit and no grace
day for "today not logged yet".

Pure reads: nothing here writes to the database.
"""

from typing import Optional, Dict, List, Iterable, Any
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone, date
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ForbiddenError
from models import Habit, HabitEvent

logger = logging.getLogger(__name__)

COMPLETED = "completed"

STREAK_NEW = "new"
STREAK_CURRENT = "current"
STREAK_BROKEN = "broken"


@dataclass
class HabitStreak:
    """Streak snapshot for one habit."""
    habit_id: str
    current_streak: int
    longest_streak: int
    last_event_date: Optional[date]
    streak_type: str  # new | current | broken
    streak_breaks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_event_date"] = self.last_event_date.isoformat() if self.last_event_date else None
        return data


@dataclass
class UserStreakSummary:
    total_active_habits: int
    habits_with_streaks: int
    average_streak: float
    total_completions: int
    streak_breaks: int
    habit_streaks: List[HabitStreak] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_active_habits": self.total_active_habits,
            "habits_with_streaks": self.habits_with_streaks,
            "average_streak": self.average_streak,
            "total_completions": self.total_completions,
            "streak_breaks": self.streak_breaks,
            "habit_streaks": [s.to_dict() for s in self.habit_streaks],
        }


def local_today(timezone_offset: Optional[int] = None, now: Optional[datetime] = None) -> date:
    """
    The caller's calendar date.

    timezone_offset is minutes east of UTC (+480 for UTC+8). Without one the
    UTC date is used.
    """
    now = now or datetime.now(timezone.utc)
    if timezone_offset is not None:
        now = now + timedelta(minutes=timezone_offset)
    return now.date()


def completed_dates(events: Iterable[HabitEvent]) -> set:
    return {e.date for e in events if e.status == COMPLETED}


def calculate_current_streak(events: Iterable[HabitEvent], today: date) -> int:
    """Count completed days walking backward from today."""
    done = completed_dates(events)
    streak = 0
    check_date = today
    while check_date in done:
        streak += 1
        check_date -= timedelta(days=1)
    return streak


def calculate_longest_streak(events: Iterable[HabitEvent]) -> int:
    """Longest run of consecutive completed calendar dates anywhere in history."""
    days = sorted(completed_dates(events))
    longest = 0
    current = 0
    previous = None
    for day in days:
        if previous is not None and day - previous == timedelta(days=1):
            current += 1
        else:
            current = 1
        longest = max(longest, current)
        previous = day
    return longest


def count_streak_breaks(events: Iterable[HabitEvent]) -> int:
    """
    Completed days followed by a non-completed calendar day.

    Only transitions inside the observed history count: a completed last
    event is not a break yet.
    """
    events = list(events)
    if not events:
        return 0
    last_observed = max(e.date for e in events)
    done = completed_dates(events)
    return sum(
        1 for day in done
        if day + timedelta(days=1) <= last_observed and (day + timedelta(days=1)) not in done
    )


def classify_streak(events: List[HabitEvent], current_streak: int) -> str:
    if not events:
        return STREAK_NEW
    if current_streak > 0:
        return STREAK_CURRENT
    return STREAK_BROKEN


def build_habit_streak(habit_id: Any, events: List[HabitEvent], today: date) -> HabitStreak:
    """Streak snapshot from an already-loaded event list."""
    if not events:
        return HabitStreak(
            habit_id=str(habit_id),
            current_streak=0,
            longest_streak=0,
            last_event_date=None,
            streak_type=STREAK_NEW,
        )

    current = calculate_current_streak(events, today)
    return HabitStreak(
        habit_id=str(habit_id),
        current_streak=current,
        longest_streak=calculate_longest_streak(events),
        last_event_date=max(e.date for e in events),
        streak_type=classify_streak(events, current),
        streak_breaks=count_streak_breaks(events),
    )


def get_owned_habit(db: Session, habit_id: Any, user_id: str) -> Habit:
    """Load a habit and enforce ownership."""
    if not isinstance(habit_id, UUID):
        try:
            habit_id = UUID(str(habit_id))
        except ValueError:
            raise NotFoundError("Habit", str(habit_id))

    habit = db.get(Habit, habit_id)
    if habit is None:
        raise NotFoundError("Habit", str(habit_id))
    if habit.user_id != user_id:
        raise ForbiddenError("Unauthorized to view this habit")
    return habit


def _events_for_habit(db: Session, habit_id: UUID, user_id: str) -> List[HabitEvent]:
    return db.query(HabitEvent).filter(
        HabitEvent.habit_id == habit_id,
        HabitEvent.user_id == user_id,
    ).order_by(HabitEvent.date).all()


def calculate_habit_streak(
    db: Session,
    habit_id: Any,
    user_id: str,
    today: Optional[date] = None,
) -> HabitStreak:
    """Current / longest streak for one habit owned by user_id."""
    habit = get_owned_habit(db, habit_id, user_id)
    today = today or local_today()
    events = _events_for_habit(db, habit.id, user_id)
    return build_habit_streak(habit.id, events, today)


def _active_habits(db: Session, user_id: str) -> List[Habit]:
    return db.query(Habit).filter(
        Habit.user_id == user_id,
        Habit.archived == False,  # noqa: E712
    ).all()


def calculate_user_streaks(
    db: Session,
    user_id: str,
    today: Optional[date] = None,
) -> UserStreakSummary:
    """Aggregate streak statistics across the user's active habits."""
    today = today or local_today()
    habits = _active_habits(db, user_id)

    if not habits:
        return UserStreakSummary(
            total_active_habits=0,
            habits_with_streaks=0,
            average_streak=0,
            total_completions=0,
            streak_breaks=0,
        )

    habit_ids = [h.id for h in habits]
    events = db.query(HabitEvent).filter(
        HabitEvent.user_id == user_id,
        HabitEvent.habit_id.in_(habit_ids),
    ).all()

    by_habit: Dict[UUID, List[HabitEvent]] = {hid: [] for hid in habit_ids}
    for event in events:
        by_habit[event.habit_id].append(event)

    streaks = [build_habit_streak(h.id, by_habit[h.id], today) for h in habits]

    return UserStreakSummary(
        total_active_habits=len(habits),
        habits_with_streaks=sum(1 for s in streaks if s.current_streak > 0),
        average_streak=round(sum(s.current_streak for s in streaks) / len(streaks), 2),
        total_completions=sum(1 for e in events if e.status == COMPLETED),
        streak_breaks=sum(s.streak_breaks for s in streaks),
        habit_streaks=streaks,
    )


def get_streak_leaderboard(
    db: Session,
    user_id: str,
    limit: int = 10,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Top habits by current streak, ties broken by longest streak.
    """
    summary = calculate_user_streaks(db, user_id, today=today)
    if not summary.habit_streaks:
        return []

    habits = {str(h.id): h for h in _active_habits(db, user_id)}
    ranked = sorted(
        summary.habit_streaks,
        key=lambda s: (s.current_streak, s.longest_streak),
        reverse=True,
    )

    leaderboard = []
    for streak in ranked[:limit]:
        habit = habits.get(streak.habit_id)
        entry = streak.to_dict()
        entry["habit_name"] = habit.name if habit else None
        entry["habit_type"] = habit.type if habit else None
        leaderboard.append(entry)
    return leaderboard
