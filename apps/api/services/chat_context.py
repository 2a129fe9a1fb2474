"""
Chat Context Builder

Builds the bounded, request-scoped snapshot of a user's habits that is
injected into the assistant's system prompt.

The context block includes:
- Today's date in the user's timezone
- Active habits (display order) with today's status / value / note
- Today's plan completion
- For a free-text query: up to 3 relevant habits, a deep dive on the most
  relevant one, matching journal entries, and cached correlation insights

Nothing here is persisted and nothing here computes correlations; insights
come from the cache only.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from models import DailyPlan, Habit, HabitEvent, JournalEntry
from services.correlation_cache import get_fast_correlation_insights
from services.correlation_engine import CorrelationResult
from services.habit_relevance import HabitRelevanceScorer, MAX_RELEVANT_HABITS
from services.habit_streaks import (
    calculate_current_streak,
    calculate_longest_streak,
    get_owned_habit,
    local_today,
)

logger = logging.getLogger(__name__)

DEFAULT_ORDER = 999
DEFAULT_HABIT_HISTORY_DAYS = 30
DEFAULT_JOURNAL_LIMIT = 5
PROMPT_JOURNAL_LIMIT = 3
PROMPT_JOURNAL_EXCERPT_CHARS = 200
PROMPT_RECENT_PATTERN_DAYS = 7
QUERY_INSIGHT_LIMIT = 3


@dataclass
class HabitStatus:
    """Today's outcome for one habit."""
    id: str
    name: str
    type: str
    status: str
    value: Optional[float] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "value": self.value,
            "note": self.note,
        }


@dataclass
class PlanSummary:
    has_items: bool
    completed_count: int
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_items": self.has_items,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
        }


@dataclass
class HabitDeepDive:
    """Trailing-window history for the habit a question is about."""
    habit: Dict[str, Any]
    recent_events: List[Dict[str, Any]]
    current_streak: int
    longest_streak: int
    completion_rate: float
    total_events: int
    completed_events: int
    period_start: date
    period_end: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "habit": self.habit,
            "recent_events": self.recent_events,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "completion_rate": round(self.completion_rate, 4),
            "total_events": self.total_events,
            "completed_events": self.completed_events,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
        }


@dataclass
class ChatContext:
    """Always-included context."""
    current_date: date
    active_habits: List[Dict[str, Any]]
    today_status: List[HabitStatus]
    today_plan: Optional[PlanSummary] = None

    def status_for(self, habit_id: str) -> Optional[HabitStatus]:
        return next((s for s in self.today_status if s.id == habit_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_date": self.current_date.isoformat(),
            "active_habits": self.active_habits,
            "today_status": [s.to_dict() for s in self.today_status],
            "today_plan": self.today_plan.to_dict() if self.today_plan else None,
        }


@dataclass
class QueryContext(ChatContext):
    """Basic context enriched for one free-text question."""
    query: str = ""
    relevant_habits: List[Dict[str, Any]] = field(default_factory=list)
    primary_habit_context: Optional[HabitDeepDive] = None
    relevant_journals: Optional[List[Dict[str, Any]]] = None
    correlation_insights: List[CorrelationResult] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "query": self.query,
            "relevant_habits": self.relevant_habits,
            "primary_habit_context": (
                self.primary_habit_context.to_dict() if self.primary_habit_context else None
            ),
            "relevant_journals": self.relevant_journals,
            "correlation_insights": [c.to_dict() for c in self.correlation_insights],
            "generated_at": self.generated_at.isoformat(),
        })
        return data


def _habit_summary(habit: Habit) -> Dict[str, Any]:
    return {
        "id": str(habit.id),
        "name": habit.name,
        "type": habit.type,
        "frequency": habit.frequency,
        "goal_value": habit.goal_value,
        "goal_direction": habit.goal_direction,
        "unit": habit.unit,
        "goal_time": habit.goal_time,
        "order": habit.order,
    }


def _event_summary(event: HabitEvent) -> Dict[str, Any]:
    return {
        "id": str(event.id),
        "date": event.date.isoformat(),
        "status": event.status,
        "value": event.value,
        "note": event.note,
        "timestamp": event.timestamp.isoformat() if event.timestamp else None,
    }


def _plan_summary(db: Session, user_id: str, today: date) -> Optional[PlanSummary]:
    plan = db.query(DailyPlan).filter(
        DailyPlan.user_id == user_id,
        DailyPlan.date == today,
    ).first()
    if plan is None:
        return None

    items = list(plan.items)
    return PlanSummary(
        has_items=len(items) > 0,
        completed_count=sum(1 for item in items if item.completed),
        total_count=len(items),
    )


def build_basic_context(
    db: Session,
    user_id: str,
    timezone_offset: Optional[int] = None,
) -> ChatContext:
    """Active habits, today's per-habit status and today's plan."""
    today = local_today(timezone_offset)

    habits = db.query(Habit).filter(
        Habit.user_id == user_id,
        Habit.archived == False,  # noqa: E712
    ).all()
    habits.sort(key=lambda h: h.order if h.order is not None else DEFAULT_ORDER)

    today_events = db.query(HabitEvent).filter(
        HabitEvent.user_id == user_id,
        HabitEvent.date == today,
    ).all()
    events_by_habit = {e.habit_id: e for e in today_events}

    statuses = []
    for habit in habits:
        event = events_by_habit.get(habit.id)
        statuses.append(HabitStatus(
            id=str(habit.id),
            name=habit.name,
            type=habit.type,
            status=event.status if event else "not_marked",
            value=event.value if event else None,
            note=event.note if event else None,
        ))

    return ChatContext(
        current_date=today,
        active_habits=[_habit_summary(h) for h in habits],
        today_status=statuses,
        today_plan=_plan_summary(db, user_id, today),
    )


def build_habit_context(
    db: Session,
    user_id: str,
    habit_id: Any,
    days_back: int = DEFAULT_HABIT_HISTORY_DAYS,
    today: Optional[date] = None,
) -> HabitDeepDive:
    """
    History, streak and completion rate for one habit over a trailing window.

    Raises NotFoundError / ForbiddenError when the habit is missing or not
    owned by user_id.
    """
    habit = get_owned_habit(db, habit_id, user_id)
    today = today or local_today()
    period_start = today - timedelta(days=days_back)

    events = db.query(HabitEvent).filter(
        HabitEvent.habit_id == habit.id,
        HabitEvent.date >= period_start,
    ).order_by(HabitEvent.date).all()

    total = len(events)
    completed = sum(1 for e in events if e.status == "completed")

    return HabitDeepDive(
        habit=_habit_summary(habit),
        recent_events=[_event_summary(e) for e in events],
        current_streak=calculate_current_streak(events, today),
        longest_streak=calculate_longest_streak(events),
        completion_rate=completed / total if total > 0 else 0.0,
        total_events=total,
        completed_events=completed,
        period_start=period_start,
        period_end=today,
    )


def search_journal_entries(
    db: Session,
    user_id: str,
    search_term: str,
    limit: int = DEFAULT_JOURNAL_LIMIT,
) -> List[Dict[str, Any]]:
    """Entries whose title or content contains the term, newest first."""
    term = (search_term or "").lower()
    entries = db.query(JournalEntry).filter(JournalEntry.user_id == user_id).all()

    matches = [
        e for e in entries
        if term in (e.title or "").lower() or term in (e.content or "").lower()
    ]
    matches.sort(key=lambda e: e.date, reverse=True)

    return [
        {
            "id": str(e.id),
            "date": e.date.isoformat(),
            "title": e.title,
            "content": e.content,
        }
        for e in matches[:limit]
    ]


def build_query_context(
    db: Session,
    user_id: str,
    query: str,
    include_journals: bool = True,
    max_journal_entries: int = DEFAULT_JOURNAL_LIMIT,
    habit_history_days: int = DEFAULT_HABIT_HISTORY_DAYS,
    timezone_offset: Optional[int] = None,
    include_correlations: bool = True,
    max_insights: int = QUERY_INSIGHT_LIMIT,
    scorer: Optional[HabitRelevanceScorer] = None,
) -> QueryContext:
    """Basic context plus relevance-ranked enrichment for one question."""
    basic = build_basic_context(db, user_id, timezone_offset)
    scorer = scorer or HabitRelevanceScorer()

    relevant = scorer.rank(query, basic.active_habits, limit=MAX_RELEVANT_HABITS)

    primary = None
    if relevant:
        primary = build_habit_context(
            db,
            user_id,
            relevant[0]["id"],
            days_back=habit_history_days,
            today=basic.current_date,
        )

    journals = None
    if include_journals:
        journals = search_journal_entries(db, user_id, query, limit=max_journal_entries)

    insights: List[CorrelationResult] = []
    if include_correlations:
        insights = get_fast_correlation_insights(
            db,
            user_id,
            relevant_habits=[h["name"] for h in relevant],
            max_insights=max_insights,
        )

    return QueryContext(
        current_date=basic.current_date,
        active_habits=basic.active_habits,
        today_status=basic.today_status,
        today_plan=basic.today_plan,
        query=query,
        relevant_habits=relevant,
        primary_habit_context=primary,
        relevant_journals=journals,
        correlation_insights=insights,
    )


def build_context(
    db: Session,
    user_id: str,
    query: Optional[str] = None,
    **opts: Any,
) -> Union[ChatContext, QueryContext]:
    """Basic context without a query, query context with one."""
    if not query:
        return build_basic_context(db, user_id, opts.get("timezone_offset"))
    return build_query_context(db, user_id, query, **opts)


def _format_number(value: float) -> str:
    return f"{value:g}"


def format_context_for_prompt(
    context: ChatContext,
    correlation_insights: Optional[List[CorrelationResult]] = None,
    max_journal_entries: int = PROMPT_JOURNAL_LIMIT,
) -> str:
    """Render a context as the text block that prefixes the system prompt."""
    if context is None:
        return ""

    if correlation_insights is None:
        correlation_insights = getattr(context, "correlation_insights", None) or []

    lines = [f"Current Context ({context.current_date.isoformat()}):", ""]

    lines.append(f"Active Habits ({len(context.active_habits)}):")
    for habit in context.active_habits:
        status = context.status_for(habit["id"])
        line = f"- {habit['name']} ({habit['type']}): {status.status if status else 'not_marked'}"
        if status and status.value is not None:
            unit = habit.get("unit")
            amount = _format_number(status.value)
            line += f" ({amount} {unit})" if unit else f" ({amount})"
        if status and status.note:
            line += f" - Note: {status.note}"
        lines.append(line)

    if context.today_plan:
        plan = context.today_plan
        lines.append("")
        lines.append(f"Today's Plan: {plan.completed_count}/{plan.total_count} tasks completed")

    deep_dive = getattr(context, "primary_habit_context", None)
    if deep_dive:
        lines.append("")
        lines.append(f"Detailed Context for \"{deep_dive.habit['name']}\":")
        lines.append(f"- Current streak: {deep_dive.current_streak} days")
        lines.append(
            f"- Completion rate (last {deep_dive.total_events} events): "
            f"{deep_dive.completion_rate * 100:.1f}%"
        )
        recent = sorted(deep_dive.recent_events, key=lambda e: e["date"], reverse=True)
        pattern = []
        for e in recent[:PROMPT_RECENT_PATTERN_DAYS]:
            item = f"{e['date']}: {e['status']}"
            if e.get("value") is not None:
                item += f" ({_format_number(e['value'])})"
            if e.get("note"):
                item += f" - {e['note']}"
            pattern.append(item)
        lines.append(f"- Recent pattern: {', '.join(pattern) if pattern else 'no events'}")

    journals = getattr(context, "relevant_journals", None)
    if journals:
        lines.append("")
        lines.append("Relevant Journal Entries:")
        for entry in journals[:max_journal_entries]:
            content = entry["content"] or ""
            excerpt = content[:PROMPT_JOURNAL_EXCERPT_CHARS]
            if len(content) > PROMPT_JOURNAL_EXCERPT_CHARS:
                excerpt += "..."
            lines.append(f"- {entry['date']}: \"{entry['title']}\"")
            lines.append(f"  {excerpt}")

    if correlation_insights:
        lines.append("")
        lines.append("Habit Pattern Insights:")
        for insight in correlation_insights:
            lines.append(
                f"- {insight.description} ({round(insight.confidence * 100)}% confidence, "
                f"{insight.sample_size} days data)"
            )

    return "\n".join(lines) + "\n"
