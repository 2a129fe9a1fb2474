"""
Tests for engine construction and session isolation on SQLite.
"""
from datetime import date

from sqlalchemy.pool import StaticPool

from core.database import SessionLocal, build_engine, is_sqlite_memory_url
from models import JournalEntry


class TestSqliteEngine:

    def test_memory_urls(self):
        assert is_sqlite_memory_url("sqlite://")
        assert is_sqlite_memory_url("sqlite:///:memory:")
        assert not is_sqlite_memory_url("sqlite:////tmp/habits.db")

    def test_memory_database_shares_one_connection(self):
        engine = build_engine("sqlite://")
        assert isinstance(engine.pool, StaticPool)
        engine.dispose()

    def test_file_database_uses_connection_per_checkout(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'habits.db'}")
        assert not isinstance(engine.pool, StaticPool)
        engine.dispose()

    def test_overlapping_sessions(self, user_id):
        """A second session can read while the first holds an open write"""
        writer = SessionLocal()
        reader = SessionLocal()
        try:
            writer.add(JournalEntry(user_id=user_id, date=date(2026, 3, 1), title="t", content="c"))
            writer.flush()

            count = reader.query(JournalEntry).filter(JournalEntry.user_id == user_id).count()
            assert count == 0
        finally:
            writer.rollback()
            writer.close()
            reader.close()
