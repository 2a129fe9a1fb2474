"""
Assistant Chat API Router
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from core.auth import get_current_user_id
from core.database import get_db
from schemas import ChatMessageRequest, ChatMessageResponse
from services.chat_context import build_context
from services.habit_chat import HabitChatService

router = APIRouter(prefix="/v1/chat", tags=["chat"])


@router.get("/context")
def chat_context(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    query: Optional[str] = Query(None, max_length=4000),
    timezone_offset: Optional[int] = Query(None, ge=-14 * 60, le=14 * 60),
):
    """The context the assistant would see, basic or query-enriched."""
    return build_context(db, user_id, query=query, timezone_offset=timezone_offset).to_dict()


@router.post("/messages", response_model=ChatMessageResponse)
def send_message(
    payload: ChatMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Ask the assistant. Always returns text; failures come back as a
    fallback reply with error=true.
    """
    return HabitChatService(db).send_message(
        user_id,
        payload.message,
        timezone_offset=payload.timezone_offset,
        include_journals=payload.include_journals,
        max_journal_entries=payload.max_journal_entries,
        habit_history_days=payload.habit_history_days,
    )
