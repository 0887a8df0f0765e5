"""
Integration tests for the SQLite-backed preference repository.

Tests cover:
- Insert, update, delete against in-memory SQLite
- Durability across sessions on a file database
"""

from dashsync.config.settings import Settings, set_settings, reset_settings
from dashsync.repositories.sqlalchemy import (
    SqlAlchemyPreferenceRepository,
    get_session,
    init_db,
    init_db_with_path,
    reset_database,
)


class TestPreferenceRepository:
    """Tests for SqlAlchemyPreferenceRepository."""

    def test_get_missing_returns_none(self, preference_repo):
        assert preference_repo.get("selected_portfolio_id") is None

    def test_set_then_update(self, preference_repo):
        preference_repo.set("selected_portfolio_id", "p1")
        preference_repo.set("selected_portfolio_id", "p2")

        assert preference_repo.get("selected_portfolio_id") == "p2"

    def test_delete(self, preference_repo):
        preference_repo.set("k", "v")
        preference_repo.delete("k")
        preference_repo.delete("never-set")

        assert preference_repo.get("k") is None


class TestDurability:
    """Tests for values surviving a new session."""

    def test_value_survives_new_session(self, tmp_path):
        """
        GIVEN a selection written through one session
        WHEN a new session opens the same database file
        THEN the selection is still there
        """
        reset_database()
        init_db_with_path(tmp_path / "prefs.db")
        try:
            first = get_session()
            SqlAlchemyPreferenceRepository(first).set("selected_portfolio_id", "p7")
            first.close()

            second = get_session()
            assert SqlAlchemyPreferenceRepository(second).get("selected_portfolio_id") == "p7"
            second.close()
        finally:
            reset_database()

    def test_init_db_uses_settings_data_dir(self, tmp_path):
        reset_database()
        set_settings(Settings(data_dir=tmp_path))
        try:
            init_db()
            session = get_session()
            SqlAlchemyPreferenceRepository(session).set("k", "v")
            session.close()

            assert (tmp_path / "dashsync.db").exists()
        finally:
            reset_database()
            reset_settings()
