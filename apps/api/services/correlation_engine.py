"""
Habit Correlation Engine

Discovers pairwise relationships between a user's habits: "when you complete
A, you're N% more (or less) likely to complete B".

The score is a difference of conditional completion probabilities,
P(B|A) - P(B|not A), not a Pearson coefficient. It lives in [-1, 1].

Key principles:
- Personal data only (one user's habits, trailing window)
- Sample-size gate before anything is reported
- Noise floor on |correlation|
- Confidence grows linearly with valid days up to a month

A day is "valid" for a pair when at least one of the two habits has a
recorded event that day (either, not both).
"""

from datetime import date, timedelta
from itertools import combinations
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from models import Habit, HabitEvent
from services.habit_streaks import local_today

logger = logging.getLogger(__name__)


# Statistical thresholds
MIN_SAMPLE_SIZE = 14  # Minimum valid days for a pair
DAYS_BACK = 60  # Trailing analysis window
NOISE_FLOOR = 0.15  # Minimum |P(B|A) - P(B|~A)| to report
FULL_CONFIDENCE_DAYS = 30  # Confidence reaches 1.0 at this many valid days
MAX_RESULTS = 10


class CorrelationResult:
    """Result of a habit-pair correlation analysis."""

    def __init__(
        self,
        habit_a: str,
        habit_b: str,
        correlation: float,
        confidence: float,
        sample_size: int,
        description: str,
    ):
        self.habit_a = habit_a
        self.habit_b = habit_b
        self.correlation = correlation
        self.confidence = confidence
        self.sample_size = sample_size
        self.description = description

    def to_dict(self) -> Dict:
        return {
            "habitA": self.habit_a,
            "habitB": self.habit_b,
            "correlation": self.correlation,
            "confidence": self.confidence,
            "sampleSize": self.sample_size,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CorrelationResult":
        return cls(
            habit_a=data["habitA"],
            habit_b=data["habitB"],
            correlation=float(data["correlation"]),
            confidence=float(data["confidence"]),
            sample_size=int(data["sampleSize"]),
            description=data.get("description", ""),
        )

    def mentions_any(self, habit_names: List[str]) -> bool:
        """True when either habit name contains one of the given names (case-insensitive)."""
        a = self.habit_a.lower()
        b = self.habit_b.lower()
        return any(name.lower() in a or name.lower() in b for name in habit_names)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CorrelationResult):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"CorrelationResult({self.habit_a!r} -> {self.habit_b!r}, "
            f"r={self.correlation:.2f}, n={self.sample_size})"
        )


def describe_correlation(habit_a: str, habit_b: str, correlation: float) -> str:
    percentage = round(abs(correlation) * 100)
    direction = "more likely" if correlation > 0 else "less likely"
    return f"When you complete {habit_a}, you're {percentage}% {direction} to complete {habit_b}"


def build_completion_map(events: List[HabitEvent]) -> Dict[date, Dict[str, bool]]:
    """
    Group events into {date: {habit_id: completed?}}.

    Presence of a key means the habit has a recorded event that day,
    whatever its status.
    """
    by_date: Dict[date, Dict[str, bool]] = {}
    for event in events:
        by_date.setdefault(event.date, {})[str(event.habit_id)] = event.status == "completed"
    return by_date


def calculate_pair_correlation(
    habit_a: Habit,
    habit_b: Habit,
    completion_map: Dict[date, Dict[str, bool]],
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> Optional[CorrelationResult]:
    """
    Correlation for one ordered pair, or None when the pair is not reportable.

    Returns None when there are too few valid days, when either habit was
    never completed in the window, or when the effect is under the noise floor.
    """
    a_id = str(habit_a.id)
    b_id = str(habit_b.id)

    both = 0
    a_only = 0
    b_only = 0
    neither = 0
    valid_days = 0

    for day_events in completion_map.values():
        if a_id not in day_events and b_id not in day_events:
            continue

        valid_days += 1
        a_done = day_events.get(a_id, False)
        b_done = day_events.get(b_id, False)

        if a_done and b_done:
            both += 1
        elif a_done:
            a_only += 1
        elif b_done:
            b_only += 1
        else:
            neither += 1

    if valid_days < min_sample_size:
        return None

    total_a_completed = both + a_only
    total_b_completed = both + b_only
    if total_a_completed == 0 or total_b_completed == 0:
        return None

    prob_b_given_a = both / total_a_completed
    total_a_not_completed = b_only + neither
    prob_b_given_not_a = b_only / total_a_not_completed if total_a_not_completed > 0 else 0.0

    correlation = prob_b_given_a - prob_b_given_not_a
    if abs(correlation) < NOISE_FLOOR:
        return None

    confidence = min(valid_days / FULL_CONFIDENCE_DAYS, 1.0)

    return CorrelationResult(
        habit_a=habit_a.name,
        habit_b=habit_b.name,
        correlation=correlation,
        confidence=confidence,
        sample_size=valid_days,
        description=describe_correlation(habit_a.name, habit_b.name, correlation),
    )


def calculate_habit_correlations(
    db: Session,
    user_id: str,
    min_sample_size: int = MIN_SAMPLE_SIZE,
    days_back: int = DAYS_BACK,
    today: Optional[date] = None,
) -> List[CorrelationResult]:
    """
    Strongest habit-pair correlations for a user, top MAX_RESULTS by |r|.

    Args:
        db: Database session
        user_id: Owner of the habits
        min_sample_size: Minimum valid days per pair
        days_back: Trailing window in days
        today: Anchor date for the window (UTC date when omitted)

    Returns:
        List of CorrelationResult, strongest first. Empty when the user has
        fewer than two active habits or nothing passes the gates.
    """
    habits = db.query(Habit).filter(
        Habit.user_id == user_id,
        Habit.archived == False,  # noqa: E712
    ).order_by(Habit.created_at, Habit.id).all()

    if len(habits) < 2:
        return []

    today = today or local_today()
    cutoff = today - timedelta(days=days_back)

    events = db.query(HabitEvent).filter(
        HabitEvent.user_id == user_id,
        HabitEvent.date >= cutoff,
    ).all()

    completion_map = build_completion_map(events)

    correlations = []
    for habit_a, habit_b in combinations(habits, 2):
        result = calculate_pair_correlation(habit_a, habit_b, completion_map, min_sample_size)
        if result is not None:
            correlations.append(result)

    correlations.sort(key=lambda c: abs(c.correlation), reverse=True)

    logger.debug(
        f"Correlations for {user_id}: {len(correlations)} pairs passed "
        f"({len(habits)} habits, {len(completion_map)} days)"
    )
    return correlations[:MAX_RESULTS]
