"""
Habit Chat Tests

DETERMINISTIC: no LLM calls, the OpenAI client is a MagicMock.
These tests verify:
1. The system prompt carries the formatted context
2. A model reply is returned with error=False
3. Model failures, empty replies and a missing client all produce the
   fallback reply with error=True and never raise
"""
import pytest
from unittest.mock import MagicMock, patch

from core.config import settings
from services.habit_chat import FALLBACK_RESPONSE, HabitChatService, build_system_prompt


def _completion(text):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    return response


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("  Nice work on Meditation!  ")
    return client


class TestSendMessage:

    def test_successful_reply(self, make_habit, db_session, user_id, mock_client):
        make_habit("Meditation")
        result = HabitChatService(db_session, client=mock_client).send_message(user_id, "How is my meditation going?")

        assert result["error"] is False
        assert result["response"] == "Nice work on Meditation!"
        assert result["context"]["relevant_habits"][0]["name"] == "Meditation"

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == settings.CHAT_MODEL
        assert kwargs["max_tokens"] == settings.CHAT_MAX_TOKENS
        assert kwargs["temperature"] == settings.CHAT_TEMPERATURE
        system, user = kwargs["messages"]
        assert system["role"] == "system"
        assert "Active Habits (1):" in system["content"]
        assert 'Detailed Context for "Meditation":' in system["content"]
        assert user == {"role": "user", "content": "How is my meditation going?"}

    def test_model_error_returns_fallback(self, db_session, user_id, mock_client):
        mock_client.chat.completions.create.side_effect = RuntimeError("rate limited")
        result = HabitChatService(db_session, client=mock_client).send_message(user_id, "hello")

        assert result["error"] is True
        assert result["response"] == FALLBACK_RESPONSE
        assert "rate limited" not in result["response"]

    def test_empty_reply_returns_fallback(self, db_session, user_id, mock_client):
        mock_client.chat.completions.create.return_value = _completion("   ")
        result = HabitChatService(db_session, client=mock_client).send_message(user_id, "hello")
        assert result["error"] is True
        assert result["response"] == FALLBACK_RESPONSE

    def test_context_failure_returns_fallback(self, db_session, user_id, mock_client):
        with patch("services.habit_chat.build_query_context", side_effect=RuntimeError("db down")):
            result = HabitChatService(db_session, client=mock_client).send_message(user_id, "hello")
        assert result["error"] is True
        mock_client.chat.completions.create.assert_not_called()

    def test_no_client_configured(self, db_session, user_id, monkeypatch):
        monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
        result = HabitChatService(db_session).send_message(user_id, "hello")
        assert result == {"response": FALLBACK_RESPONSE, "context": None, "error": True}


class TestSystemPrompt:

    def test_context_is_embedded(self):
        prompt = build_system_prompt("Current Context (2026-03-31):\n")
        assert "Current Context (2026-03-31):" in prompt
        assert "{context}" not in prompt
