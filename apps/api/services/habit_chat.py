"""
Habit Assistant Chat

Answers a user's free-text message with an LLM, grounded in the chat
context (habits, today's status, deep dive, journal matches, cached
correlation insights).

Design goals:
- Keep the call lightweight: one system prompt + one user turn
- Never raise to the caller. Missing client, context failures, model
  errors and empty replies all produce FALLBACK_RESPONSE with error=True
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from openai import OpenAI
from sqlalchemy.orm import Session

from core.config import settings
from services.chat_context import build_query_context, format_context_for_prompt

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = (
    "I'm having trouble connecting right now, sorry about that. "
    "Your habits and notes are safe. Let me know if you'd like me to try again!"
)

SYSTEM_PROMPT = """You are a helpful assistant for a personal development app. You help users with their habits, daily planning, and journaling.

Key principles:
- Be encouraging and supportive, especially when users struggle or fail at habits
- Provide actionable insights based on their actual data
- Keep responses concise but helpful (2-4 sentences max)
- Reference their actual habit data, streaks, and progress when relevant
- If they mention failing or struggling, acknowledge it warmly and offer practical next steps
- Focus on progress over perfection - celebrate small wins

Natural Language Understanding:
- When users ask how habits affect each other, connect their words to their actual habit names
- When correlation insights are listed, reference the specific patterns
- Without correlation data, answer from streaks and completion rates

{context}
Respond to the user's message with this context in mind. Always reference their specific data when available."""


def get_openai_client() -> Optional[OpenAI]:
    """OpenAI client when an API key is configured, else None."""
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def build_system_prompt(context_block: str) -> str:
    return SYSTEM_PROMPT.format(context=context_block)


class HabitChatService:
    """Context-grounded assistant replies with a non-throwing fallback."""

    def __init__(self, db: Session, client: Optional[Any] = None):
        self.db = db
        self.client = client if client is not None else get_openai_client()

    def _fallback(self, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {"response": FALLBACK_RESPONSE, "context": context, "error": True}

    def send_message(
        self,
        user_id: str,
        message: str,
        timezone_offset: Optional[int] = None,
        include_journals: bool = True,
        max_journal_entries: int = 3,
        habit_history_days: int = 30,
    ) -> Dict[str, Any]:
        """
        Reply to one message.

        Returns:
            {"response": str, "context": dict | None, "error": bool}
        """
        if self.client is None:
            logger.warning("Chat requested but no LLM client is configured")
            return self._fallback()

        try:
            context = build_query_context(
                self.db,
                user_id,
                message,
                include_journals=include_journals,
                max_journal_entries=max_journal_entries,
                habit_history_days=habit_history_days,
                timezone_offset=timezone_offset,
            )
            system_prompt = build_system_prompt(
                format_context_for_prompt(context, max_journal_entries=max_journal_entries)
            )
        except Exception as e:
            logger.error(f"Chat context assembly failed for {user_id}: {e}", exc_info=True)
            return self._fallback()

        try:
            response = self.client.chat.completions.create(
                model=settings.CHAT_MODEL,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
                max_tokens=settings.CHAT_MAX_TOKENS,
                temperature=settings.CHAT_TEMPERATURE,
            )
            reply = response.choices[0].message.content if response.choices else None
        except Exception as e:
            logger.error(f"Chat completion failed for {user_id}: {e}")
            return self._fallback(context.to_dict())

        if not reply or not reply.strip():
            logger.warning(f"Empty chat completion for {user_id}")
            return self._fallback(context.to_dict())

        return {"response": reply.strip(), "context": context.to_dict(), "error": False}
