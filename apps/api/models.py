from sqlalchemy import Column, Integer, Boolean, CheckConstraint, Float, Date, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from core.database import Base
import uuid
from datetime import datetime, timezone


# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

HABIT_TYPES = ("simple", "quantity", "duration", "schedule", "avoidance")
EVENT_STATUSES = ("completed", "skipped", "failed", "not_marked")
GOAL_DIRECTIONS = ("at_least", "no_more_than", "by", "after")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Habit(Base):
    """
    A habit definition owned by one user.

    Archival is a soft delete: archived habits keep their history but drop
    out of streak summaries, correlations and chat context.
    """
    __tablename__ = "habit"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default="simple")  # see HABIT_TYPES

    # {"type": "daily" | "weekly" | "specific_days", "goal_per_week": 3, "days_of_week": ["mon", ...]}
    frequency = Column(JSONType, nullable=False, default=lambda: {"type": "daily"})

    # Quantity / duration / schedule goals
    goal_value = Column(Float, nullable=True)
    goal_direction = Column(Text, nullable=True)  # see GOAL_DIRECTIONS
    unit = Column(Text, nullable=True)
    goal_time = Column(Text, nullable=True)  # "HH:MM" for schedule habits

    order = Column(Integer, nullable=True)
    archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    events = relationship("HabitEvent", back_populates="habit", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "type IN ('simple', 'quantity', 'duration', 'schedule', 'avoidance')",
            name="ck_habit_type",
        ),
        Index("ix_habit_user_archived", "user_id", "archived"),
    )


class HabitEvent(Base):
    """
    The logged outcome of a habit on one calendar date.

    At most one event per (habit, date); later logs for the same date are
    updates to this row.
    """
    __tablename__ = "habit_event"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    habit_id = Column(Uuid(as_uuid=True), ForeignKey("habit.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Text, nullable=False, index=True)
    date = Column(Date, nullable=False)
    status = Column(Text, nullable=False)  # see EVENT_STATUSES
    value = Column(Float, nullable=True)
    note = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    habit = relationship("Habit", back_populates="events")

    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_event_habit_date"),
        CheckConstraint(
            "status IN ('completed', 'skipped', 'failed', 'not_marked')",
            name="ck_habit_event_status",
        ),
        Index("ix_habit_event_user_date", "user_id", "date"),
        Index("ix_habit_event_user_created", "user_id", "created_at"),
    )


class JournalEntry(Base):
    __tablename__ = "journal_entry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    date = Column(Date, nullable=False)
    title = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_journal_entry_user_date", "user_id", "date"),
    )


class DailyPlan(Base):
    __tablename__ = "daily_plan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    items = relationship(
        "DailyPlanItem",
        back_populates="plan",
        order_by="DailyPlanItem.order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_plan_user_date"),
    )


class DailyPlanItem(Base):
    __tablename__ = "daily_plan_item"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    daily_plan_id = Column(Uuid(as_uuid=True), ForeignKey("daily_plan.id", ondelete="CASCADE"), nullable=False, index=True)
    time = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    order = Column(Integer, default=0, nullable=False)

    plan = relationship("DailyPlan", back_populates="items")


class CorrelationCache(Base):
    """
    The latest habit-pair correlation results for one user.

    Single row per user, overwritten wholesale on every recompute
    (last writer wins). A row past valid_until is treated as absent.
    """
    __tablename__ = "correlation_cache"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    correlations = Column(JSONType, nullable=False, default=list)
    calculated_at = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)


class CorrelationTriggerTracker(Base):
    """
    Debounce state for correlation recomputes, one row per user.

    Created lazily by the first trigger check after a user's first event.
    """
    __tablename__ = "correlation_trigger_tracker"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, unique=True)
    last_update_at = Column(DateTime(timezone=True), nullable=False)
    events_since_update = Column(Integer, default=0, nullable=False)
    total_events = Column(Integer, default=0, nullable=False)
