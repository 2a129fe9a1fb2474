"""
Tests for the correlation recompute trigger.

The gate (new events, total events, days since last update), the lazy
tracker, failure isolation from the event write, and celery dispatch.
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from core.config import settings
from models import CorrelationCache, CorrelationTriggerTracker, HabitEvent
from services.correlation_cache import as_utc
from services.correlation_trigger import (
    TRIGGER_MODE_CELERY,
    schedule_correlation_update,
    should_trigger_correlation_update,
    trigger_correlation_update,
)
from services.habit_events import create_habit_event


def _tracker(db_session, user_id, days_ago=4, total_events=10):
    tracker = CorrelationTriggerTracker(
        user_id=user_id,
        last_update_at=datetime.now(timezone.utc) - timedelta(days=days_ago),
        events_since_update=0,
        total_events=total_events,
    )
    db_session.add(tracker)
    db_session.flush()
    return tracker


def _tracker_row(db_session, user_id):
    return db_session.query(CorrelationTriggerTracker).filter(
        CorrelationTriggerTracker.user_id == user_id
    ).first()


def _log_days(db_session, user_id, habit, count, start=1):
    today = datetime.now(timezone.utc).date()
    for i in range(start, start + count):
        create_habit_event(db_session, user_id, habit.id, (today - timedelta(days=i)).isoformat(), "completed")


class TestTriggerGate:

    def test_first_check_creates_tracker_and_declines(self, db_session, user_id):
        assert _tracker_row(db_session, user_id) is None
        assert should_trigger_correlation_update(db_session, user_id) is False

        tracker = _tracker_row(db_session, user_id)
        assert tracker is not None
        assert tracker.events_since_update == 0
        assert tracker.total_events == 0

    def test_five_new_events_do_not_trigger(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        _tracker(db_session, user_id)
        _log_days(db_session, user_id, habit, 5)

        assert should_trigger_correlation_update(db_session, user_id) is False
        assert db_session.query(CorrelationCache).filter(CorrelationCache.user_id == user_id).first() is None

    def test_gate_records_events_since_update(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        _tracker(db_session, user_id)
        _log_days(db_session, user_id, habit, 4)

        should_trigger_correlation_update(db_session, user_id)
        assert _tracker_row(db_session, user_id).events_since_update == 4

    def test_sixth_event_triggers_recompute(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        make_habit("Walk")
        tracker = _tracker(db_session, user_id)
        before = tracker.last_update_at

        _log_days(db_session, user_id, habit, 6)

        cache = db_session.query(CorrelationCache).filter(CorrelationCache.user_id == user_id).first()
        assert cache is not None
        tracker = _tracker_row(db_session, user_id)
        assert as_utc(tracker.last_update_at) > as_utc(before)
        assert tracker.total_events == 6
        assert tracker.events_since_update == 0

    def test_total_event_floor(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        _tracker(db_session, user_id, total_events=0)
        _log_days(db_session, user_id, habit, 6)

        # 6 new events but only 6 in total
        assert should_trigger_correlation_update(db_session, user_id) is False

    def test_minimum_days_between_updates(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        _tracker(db_session, user_id, days_ago=1)
        _log_days(db_session, user_id, habit, 8)

        assert should_trigger_correlation_update(db_session, user_id) is False
        later = datetime.now(timezone.utc) + timedelta(days=2)
        assert should_trigger_correlation_update(db_session, user_id, now=later) is True

    def test_event_updates_do_not_count_as_new(self, make_habit, add_event, db_session, user_id):
        habit = make_habit("Read")
        old = datetime.now(timezone.utc) - timedelta(days=10)
        for i in range(8):
            add_event(habit, date(2026, 1, 1) + timedelta(days=i), created_at=old)
        _tracker(db_session, user_id, total_events=20)

        assert should_trigger_correlation_update(db_session, user_id) is False


class TestTriggerExecution:

    def test_declined_result(self, db_session, user_id):
        _tracker(db_session, user_id)
        result = trigger_correlation_update(db_session, user_id)
        assert result == {"updated": False, "reason": "Not enough new events"}

    def test_successful_result_caches_even_empty(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        _tracker(db_session, user_id)
        _log_days(db_session, user_id, habit, 6)

        # the sixth write already recomputed; rewind the tracker past the debounce
        row = _tracker_row(db_session, user_id)
        row.last_update_at = datetime.now(timezone.utc) - timedelta(days=5)
        row.total_events = 10

        result = trigger_correlation_update(db_session, user_id)
        assert result == {"updated": True, "correlations_found": 0}
        cache = db_session.query(CorrelationCache).filter(CorrelationCache.user_id == user_id).one()
        assert cache.correlations == []

    def test_calculation_failure_is_reported_not_raised(self, make_habit, db_session, user_id):
        tracker = _tracker(db_session, user_id)
        before = tracker.last_update_at

        with patch("services.correlation_trigger.should_trigger_correlation_update", return_value=True), \
                patch("services.correlation_trigger.calculate_habit_correlations", side_effect=RuntimeError("boom")):
            result = trigger_correlation_update(db_session, user_id)

        assert result == {"updated": False, "reason": "Calculation failed"}
        assert as_utc(_tracker_row(db_session, user_id).last_update_at) == as_utc(before)


class TestWritePathIsolation:
    """Analytics failures never fail the event write"""

    def test_trigger_crash_keeps_event(self, make_habit, db_session, user_id):
        habit = make_habit("Read")
        with patch(
            "services.correlation_trigger.should_trigger_correlation_update",
            side_effect=RuntimeError("tracker table missing"),
        ):
            habit_event = create_habit_event(db_session, user_id, habit.id, "2026-03-01", "completed")

        assert db_session.get(HabitEvent, habit_event.id) is not None

    def test_schedule_never_raises(self, db_session, user_id):
        with patch("services.correlation_trigger.trigger_correlation_update", side_effect=RuntimeError("boom")):
            assert schedule_correlation_update(db_session, user_id) is None

    def test_celery_mode_enqueues_after_commit(self, make_habit, db_session, user_id, monkeypatch):
        from tasks import correlation_tasks

        fake_task = MagicMock()
        monkeypatch.setattr(correlation_tasks, "recompute_correlations", fake_task)
        monkeypatch.setattr(settings, "CORRELATION_TRIGGER_MODE", TRIGGER_MODE_CELERY)

        habit = make_habit("Read")
        create_habit_event(db_session, user_id, habit.id, "2026-03-01", "completed")
        fake_task.delay.assert_not_called()
        assert _tracker_row(db_session, user_id) is None

        db_session.commit()
        fake_task.delay.assert_called_once_with(user_id)


class TestRecomputeTask:

    def test_task_commits_and_closes(self):
        from tasks.correlation_tasks import recompute_correlations

        session = MagicMock()
        with patch("tasks.correlation_tasks.get_db_sync", return_value=session), \
                patch("services.correlation_trigger.trigger_correlation_update",
                      return_value={"updated": True, "correlations_found": 2}):
            result = recompute_correlations("user_1")

        assert result == {"updated": True, "correlations_found": 2}
        session.commit.assert_called_once()
        session.close.assert_called_once()

    def test_task_rolls_back_on_error(self):
        from tasks.correlation_tasks import recompute_correlations

        session = MagicMock()
        with patch("tasks.correlation_tasks.get_db_sync", return_value=session), \
                patch("services.correlation_trigger.trigger_correlation_update",
                      side_effect=RuntimeError("db gone")):
            result = recompute_correlations("user_1")

        assert result["updated"] is False
        assert result["status"] == "error"
        session.rollback.assert_called_once()
        session.close.assert_called_once()
