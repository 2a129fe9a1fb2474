"""
Pytest configuration and fixtures

IMPORTANT: All tests use transactional rollback isolation.
Nothing created during tests persists to the database.

The schema comes from Alembic (upgrade head) against a throwaway SQLite
file, so the migration is exercised on every run.
"""
import pytest
import sys
import os
import tempfile
from uuid import uuid4
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure the app before anything imports core.config
_TEST_DB_DIR = tempfile.mkdtemp(prefix="habit_analytics_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-for-habit-analytics-0123456789"
os.environ["CORRELATION_TRIGGER_MODE"] = "inline"
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOG_FORMAT"] = "text"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture(scope="session", autouse=True)
def _ensure_db_schema_is_at_head():
    """Build the test database with the Alembic migrations."""
    try:
        from alembic import command
        from alembic.config import Config

        api_root = Path(__file__).resolve().parents[1]
        cfg = Config(str(api_root / "alembic.ini"))
        cfg.set_main_option("script_location", str(api_root / "alembic"))
        command.upgrade(cfg, "head")
    except Exception as e:
        raise RuntimeError(f"Failed to upgrade DB to Alembic head: {e}") from e


from sqlalchemy.orm import Session  # noqa: E402
from core.database import engine  # noqa: E402
from models import Habit, HabitEvent, JournalEntry, DailyPlan, DailyPlanItem  # noqa: E402


@pytest.fixture(scope="function")
def db_session():
    """
    Create a database session with transactional rollback.

    session.commit() and begin_nested() inside application code only touch
    SAVEPOINTs; the outer transaction is rolled back after the test.
    """
    connection = engine.connect()
    transaction = connection.begin()

    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def user_id():
    return f"user_{uuid4().hex[:12]}"


@pytest.fixture
def make_habit(db_session, user_id):
    """
    Factory for habits owned by the test user.

    created_at is spaced one minute apart so creation order is stable.
    """
    counter = {"n": 0}
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _make(name="Meditation", type="simple", owner=None, **kwargs):
        counter["n"] += 1
        habit = Habit(
            user_id=owner or user_id,
            name=name,
            type=type,
            frequency=kwargs.pop("frequency", {"type": "daily"}),
            created_at=kwargs.pop("created_at", base + timedelta(minutes=counter["n"])),
            **kwargs,
        )
        db_session.add(habit)
        db_session.flush()
        return habit

    return _make


@pytest.fixture
def add_event(db_session):
    """Insert a habit event directly, bypassing the write path and its trigger."""

    def _add(habit, day, status="completed", value=None, note=None, created_at=None):
        created_at = created_at or datetime.now(timezone.utc)
        habit_event = HabitEvent(
            habit_id=habit.id,
            user_id=habit.user_id,
            date=day,
            status=status,
            value=value,
            note=note,
            created_at=created_at,
            updated_at=created_at,
        )
        db_session.add(habit_event)
        db_session.flush()
        return habit_event

    return _add


@pytest.fixture
def add_journal(db_session, user_id):
    def _add(day, title="", content=""):
        entry = JournalEntry(user_id=user_id, date=day, title=title, content=content)
        db_session.add(entry)
        db_session.flush()
        return entry

    return _add


@pytest.fixture
def add_plan(db_session, user_id):
    def _add(day, items):
        plan = DailyPlan(user_id=user_id, date=day)
        for index, (description, completed) in enumerate(items):
            plan.items.append(DailyPlanItem(description=description, completed=completed, order=index))
        db_session.add(plan)
        db_session.flush()
        return plan

    return _add
