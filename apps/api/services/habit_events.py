"""
Habit Event Logging

The write path for habit events. Every successful write is followed by a
best-effort correlation trigger check; analytics failures never block
logging.

Rejections (never silently coerced):
- ValidationError: malformed date, unknown status, missing / negative value
  for a completed quantity or duration habit
- ForbiddenError: habit or event owned by someone else
- ConflictError: an event already exists for (habit, date)
- NotFoundError: unknown habit or event
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import EVENT_STATUSES, Habit, HabitEvent
from services.correlation_trigger import schedule_correlation_update

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
VALUE_REQUIRED_TYPES = ("quantity", "duration")


def parse_event_date(value: Any) -> date:
    """Accept a date or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        raise ValidationError("Date must be in YYYY-MM-DD format", field="date")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError("Date must be in YYYY-MM-DD format", field="date")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid calendar date: {value}", field="date")


def validate_habit_event_data(habit: Habit, status: str, value: Optional[float]) -> None:
    """Type-specific validation of an event against its habit."""
    if status not in EVENT_STATUSES:
        raise ValidationError(f"Unknown status: {status}", field="status")

    if habit.type in VALUE_REQUIRED_TYPES and status == "completed":
        if value is None:
            raise ValidationError(f"{habit.type} habits require a value when completed", field="value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("Value must be a number", field="value")
        if value < 0:
            raise ValidationError("Value cannot be negative", field="value")


def _as_uuid(value: Any, resource: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise NotFoundError(resource, str(value))


def _get_owned_habit(db: Session, user_id: str, habit_id: Any) -> Habit:
    habit = db.get(Habit, _as_uuid(habit_id, "Habit"))
    if habit is None:
        raise NotFoundError("Habit", str(habit_id))
    if habit.user_id != user_id:
        raise ForbiddenError("Unauthorized to create events for this habit")
    return habit


def _get_owned_event(db: Session, user_id: str, event_id: Any) -> HabitEvent:
    habit_event = db.get(HabitEvent, _as_uuid(event_id, "Habit event"))
    if habit_event is None:
        raise NotFoundError("Habit event", str(event_id))
    if habit_event.user_id != user_id:
        raise ForbiddenError("Unauthorized to modify this habit event")
    return habit_event


def _find_event(db: Session, habit_id: UUID, event_date: date) -> Optional[HabitEvent]:
    return db.query(HabitEvent).filter(
        HabitEvent.habit_id == habit_id,
        HabitEvent.date == event_date,
    ).first()


def _insert_event(db: Session, habit_event: HabitEvent) -> bool:
    """
    Flush one new event inside a SAVEPOINT.

    Returns False when the (habit, date) unique constraint rejects it, which
    happens when a concurrent writer got there after our existence check.
    """
    try:
        with db.begin_nested():
            db.add(habit_event)
            db.flush()
    except IntegrityError:
        logger.info(f"Concurrent write for habit {habit_event.habit_id} on {habit_event.date}")
        return False
    return True


def create_habit_event(
    db: Session,
    user_id: str,
    habit_id: Any,
    date: Any,
    status: str,
    value: Optional[float] = None,
    note: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> HabitEvent:
    """Insert the first event for (habit, date) and run the correlation trigger."""
    habit = _get_owned_habit(db, user_id, habit_id)
    event_date = parse_event_date(date)
    validate_habit_event_data(habit, status, value)

    if _find_event(db, habit.id, event_date) is not None:
        raise ConflictError("Habit event already exists for this date")

    now = datetime.now(timezone.utc)
    habit_event = HabitEvent(
        habit_id=habit.id,
        user_id=user_id,
        date=event_date,
        status=status,
        value=value,
        note=note,
        timestamp=timestamp,
        created_at=now,
        updated_at=now,
    )
    if not _insert_event(db, habit_event):
        raise ConflictError("Habit event already exists for this date")

    schedule_correlation_update(db, user_id)
    return habit_event


def update_habit_event(
    db: Session,
    user_id: str,
    event_id: Any,
    changes: Dict[str, Any],
) -> HabitEvent:
    """
    Patch status / value / note / timestamp of an existing event.

    Only keys present in `changes` are applied. The trigger runs when the
    status changed.
    """
    habit_event = _get_owned_event(db, user_id, event_id)
    allowed = {"status", "value", "note", "timestamp"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    if "status" in changes or "value" in changes:
        validate_habit_event_data(
            habit_event.habit,
            changes.get("status", habit_event.status),
            changes.get("value", habit_event.value),
        )

    status_changed = "status" in changes and changes["status"] != habit_event.status

    for key, value in changes.items():
        setattr(habit_event, key, value)
    habit_event.updated_at = datetime.now(timezone.utc)
    db.flush()

    if status_changed:
        schedule_correlation_update(db, user_id)
    return habit_event


def log_habit_event(
    db: Session,
    user_id: str,
    habit_id: Any,
    date: Any,
    status: str,
    value: Optional[float] = None,
    note: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> HabitEvent:
    """Create the event for (habit, date), or update it when one exists."""
    habit = _get_owned_habit(db, user_id, habit_id)
    existing = _find_event(db, habit.id, parse_event_date(date))
    if existing is None:
        return create_habit_event(db, user_id, habit.id, date, status, value, note, timestamp)

    changes: Dict[str, Any] = {"status": status, "value": value}
    if note is not None:
        changes["note"] = note
    if timestamp is not None:
        changes["timestamp"] = timestamp
    return update_habit_event(db, user_id, existing.id, changes)


def delete_habit_event(db: Session, user_id: str, event_id: Any) -> UUID:
    habit_event = _get_owned_event(db, user_id, event_id)
    event_id = habit_event.id
    db.delete(habit_event)
    db.flush()
    return event_id


def bulk_create_habit_events(
    db: Session,
    user_id: str,
    events: List[Dict[str, Any]],
) -> List[UUID]:
    """
    Insert many events at once; dates that already have an event are skipped.

    All events are validated before anything is written. The trigger runs
    once at the end.
    """
    prepared = []
    seen = set()
    for data in events:
        habit = _get_owned_habit(db, user_id, data["habit_id"])
        event_date = parse_event_date(data["date"])
        validate_habit_event_data(habit, data["status"], data.get("value"))
        prepared.append((habit, event_date, data))

    now = datetime.now(timezone.utc)
    created = []
    for habit, event_date, data in prepared:
        key = (habit.id, event_date)
        if key in seen or _find_event(db, habit.id, event_date) is not None:
            continue
        seen.add(key)

        habit_event = HabitEvent(
            habit_id=habit.id,
            user_id=user_id,
            date=event_date,
            status=data["status"],
            value=data.get("value"),
            note=data.get("note"),
            timestamp=data.get("timestamp"),
            created_at=now,
            updated_at=now,
        )
        if _insert_event(db, habit_event):
            created.append(habit_event.id)

    if created:
        schedule_correlation_update(db, user_id)
    logger.info(f"Bulk created {len(created)} of {len(events)} habit events for {user_id}")
    return created
