"""
Habit Event API Router

Logging endpoints. Correlation recomputes piggyback on these writes and
never affect their outcome.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from core.auth import get_current_user_id
from core.database import get_db
from schemas import HabitEventBulkCreate, HabitEventCreate, HabitEventResponse, HabitEventUpdate
from services.habit_events import (
    bulk_create_habit_events,
    create_habit_event,
    delete_habit_event,
    log_habit_event,
    update_habit_event,
)

router = APIRouter(prefix="/v1/habit-events", tags=["habit-events"])


@router.post("", response_model=HabitEventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: HabitEventCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return create_habit_event(
        db,
        user_id,
        habit_id=payload.habit_id,
        date=payload.date,
        status=payload.status,
        value=payload.value,
        note=payload.note,
        timestamp=payload.timestamp,
    )


@router.put("", response_model=HabitEventResponse)
def log_event(
    payload: HabitEventCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create-or-update: a repeat log for the same (habit, date) updates it."""
    return log_habit_event(
        db,
        user_id,
        habit_id=payload.habit_id,
        date=payload.date,
        status=payload.status,
        value=payload.value,
        note=payload.note,
        timestamp=payload.timestamp,
    )


@router.patch("/{event_id}", response_model=HabitEventResponse)
def update_event(
    event_id: UUID,
    payload: HabitEventUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return update_habit_event(db, user_id, event_id, payload.model_dump(exclude_unset=True))


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    delete_habit_event(db, user_id, event_id)


@router.post("/bulk", status_code=status.HTTP_201_CREATED)
def bulk_create_events(
    payload: HabitEventBulkCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> dict:
    created: List[UUID] = bulk_create_habit_events(
        db, user_id, [e.model_dump() for e in payload.events]
    )
    return {"created": [str(i) for i in created], "count": len(created)}
