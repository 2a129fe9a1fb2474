from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Literal


EventStatus = Literal["completed", "skipped", "failed", "not_marked"]


class HabitEventCreate(BaseModel):
    habit_id: UUID
    date: str  # YYYY-MM-DD, validated by the service
    status: EventStatus
    value: Optional[float] = None
    note: Optional[str] = None
    timestamp: Optional[datetime] = None


class HabitEventUpdate(BaseModel):
    """Partial update; only fields that are sent are applied."""
    status: Optional[EventStatus] = None
    value: Optional[float] = None
    note: Optional[str] = None
    timestamp: Optional[datetime] = None


class HabitEventBulkCreate(BaseModel):
    events: List[HabitEventCreate] = Field(..., min_length=1, max_length=500)


class HabitEventResponse(BaseModel):
    id: UUID
    habit_id: UUID
    user_id: str
    date: date
    status: str
    value: Optional[float] = None
    note: Optional[str] = None
    timestamp: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HabitStreakResponse(BaseModel):
    habit_id: str
    current_streak: int
    longest_streak: int
    last_event_date: Optional[date] = None
    streak_type: str
    streak_breaks: int = 0


class UserStreakSummaryResponse(BaseModel):
    total_active_habits: int
    habits_with_streaks: int
    average_streak: float
    total_completions: int
    streak_breaks: int
    habit_streaks: List[HabitStreakResponse]


class CorrelationResponse(BaseModel):
    """Wire form of a habit-pair correlation (camelCase, as cached)."""
    habitA: str
    habitB: str
    correlation: float
    confidence: float
    sampleSize: int
    description: str


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    timezone_offset: Optional[int] = Field(default=None, ge=-14 * 60, le=14 * 60)
    include_journals: bool = True
    max_journal_entries: int = Field(default=3, ge=0, le=10)
    habit_history_days: int = Field(default=30, ge=1, le=365)


class ChatMessageResponse(BaseModel):
    response: str
    error: bool = False
    context: Optional[dict] = None
