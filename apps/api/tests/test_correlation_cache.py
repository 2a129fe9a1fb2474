"""
Tests for the correlation cache: TTL, overwrite semantics, and the fast
path that never computes.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from models import CorrelationCache
from services.correlation_cache import (
    CACHE_TTL_DAYS,
    cache_correlations,
    filter_relevant,
    get_cached_correlations,
    get_correlation_insights,
    get_fast_correlation_insights,
)
from services.correlation_engine import CorrelationResult

NOW = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)


def _result(a, b, r=0.5):
    return CorrelationResult(a, b, r, 0.8, 24, f"{a} -> {b}")


@pytest.fixture
def sample_results():
    return [
        _result("Meditation", "Sleep early", 0.7),
        _result("Gym", "Protein shake", 0.5),
        _result("Meditation", "Journal", 0.3),
    ]


class TestCacheStorage:

    def test_miss_without_row(self, db_session, user_id):
        assert get_cached_correlations(db_session, user_id, now=NOW) is None

    def test_store_then_read(self, db_session, user_id, sample_results):
        cache_correlations(db_session, user_id, sample_results, now=NOW)
        assert get_cached_correlations(db_session, user_id, now=NOW) == sample_results

    def test_expires_after_ttl(self, db_session, user_id, sample_results):
        cache_correlations(db_session, user_id, sample_results, now=NOW)
        just_inside = NOW + timedelta(days=CACHE_TTL_DAYS)
        past = NOW + timedelta(days=CACHE_TTL_DAYS, seconds=1)
        assert get_cached_correlations(db_session, user_id, now=just_inside) is not None
        assert get_cached_correlations(db_session, user_id, now=past) is None

    def test_overwrite_keeps_single_row(self, db_session, user_id, sample_results):
        cache_correlations(db_session, user_id, sample_results, now=NOW)
        cache_correlations(db_session, user_id, sample_results[:1], now=NOW + timedelta(days=1))

        rows = db_session.query(CorrelationCache).filter(CorrelationCache.user_id == user_id).all()
        assert len(rows) == 1
        assert get_cached_correlations(db_session, user_id, now=NOW + timedelta(days=1)) == sample_results[:1]

    def test_repeated_writes_are_idempotent(self, db_session, user_id, sample_results):
        cache_correlations(db_session, user_id, sample_results, now=NOW)
        first = get_cached_correlations(db_session, user_id, now=NOW)
        cache_correlations(db_session, user_id, sample_results, now=NOW)
        assert get_cached_correlations(db_session, user_id, now=NOW) == first

    def test_empty_result_is_a_hit(self, db_session, user_id):
        cache_correlations(db_session, user_id, [], now=NOW)
        assert get_cached_correlations(db_session, user_id, now=NOW) == []

    def test_reads_do_not_mutate(self, db_session, user_id, sample_results):
        row = cache_correlations(db_session, user_id, sample_results, now=NOW)
        valid_until = row.valid_until
        get_cached_correlations(db_session, user_id, now=NOW)
        assert row.valid_until == valid_until


class TestFiltering:

    def test_no_filter_keeps_everything(self, sample_results):
        assert filter_relevant(sample_results, None) == sample_results
        assert filter_relevant(sample_results, []) == sample_results

    def test_filter_by_habit_name(self, sample_results):
        filtered = filter_relevant(sample_results, ["meditation"])
        assert [r.habit_b for r in filtered] == ["Sleep early", "Journal"]


class TestFastPath:
    """Cache-only insights for chat"""

    def test_never_computes_on_miss(self, db_session, user_id):
        with patch("services.correlation_cache.calculate_habit_correlations") as compute:
            assert get_fast_correlation_insights(db_session, user_id) == []
        compute.assert_not_called()

    def test_capped_and_filtered(self, db_session, user_id, sample_results):
        cache_correlations(db_session, user_id, sample_results)
        assert len(get_fast_correlation_insights(db_session, user_id)) == 2
        only_gym = get_fast_correlation_insights(db_session, user_id, relevant_habits=["Gym"], max_insights=5)
        assert [r.habit_a for r in only_gym] == ["Gym"]

    def test_read_errors_degrade_to_empty(self, db_session, user_id):
        with patch("services.correlation_cache.get_cached_correlations", side_effect=RuntimeError("db down")):
            assert get_fast_correlation_insights(db_session, user_id) == []


class TestSlowPath:
    """Explicit requests compute and cache on a miss"""

    def test_computes_and_caches_on_miss(self, db_session, user_id, sample_results):
        with patch(
            "services.correlation_cache.calculate_habit_correlations",
            return_value=sample_results,
        ) as compute:
            insights = get_correlation_insights(db_session, user_id)
            assert insights == sample_results[:3]
            # second read is served from the cache
            get_correlation_insights(db_session, user_id)
        compute.assert_called_once()

    def test_empty_computation_is_not_cached(self, db_session, user_id):
        with patch("services.correlation_cache.calculate_habit_correlations", return_value=[]):
            assert get_correlation_insights(db_session, user_id) == []
        assert get_cached_correlations(db_session, user_id) is None

    def test_real_computation(self, make_habit, add_event, db_session, user_id):
        a = make_habit("Meditation")
        b = make_habit("Sleep early")
        today = datetime.now(timezone.utc).date()
        for i in range(1, 11):
            add_event(a, today - timedelta(days=i))
            add_event(b, today - timedelta(days=i))
        for i in range(11, 21):
            add_event(a, today - timedelta(days=i), "skipped")
            add_event(b, today - timedelta(days=i), "skipped")

        insights = get_correlation_insights(db_session, user_id, relevant_habits=["sleep"])
        assert len(insights) == 1
        assert insights[0].correlation == pytest.approx(1.0)
