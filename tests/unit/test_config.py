"""
Unit tests for settings, logging setup and the Supabase client factory.
"""

import pytest
import structlog

from config import database
from config.database import ConnectionError, check_connection, get_supabase_client, reset_connection
from config.logging import configure_logging
from config.settings import Settings, settings
from services import upload_orchestrator


@pytest.fixture
def no_supabase(monkeypatch):
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_key", None)
    reset_connection()
    yield
    reset_connection()


class TestSettings:

    def test_defaults(self):
        defaults = Settings(_env_file=None)

        assert defaults.fuzzy_match_threshold == 0.7
        assert defaults.mapping_review_threshold == 0.6
        assert defaults.checkpoint_retention_days == 30
        assert defaults.max_file_size_bytes == 25 * 1024 * 1024

    def test_rejects_unknown_language(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, telegram_language="fr")


class TestConfigureLogging:

    def test_configures_structlog(self):
        configure_logging("DEBUG")

        assert structlog.is_configured()
        structlog.get_logger(__name__).info("logging_configured", check=True)


class TestDatabase:

    def test_missing_credentials(self, no_supabase):
        with pytest.raises(ConnectionError):
            get_supabase_client()

    def test_health_check_reports_failure(self, no_supabase):
        health = check_connection()

        assert health["status"] == "unhealthy"
        assert "SUPABASE_URL" in health["error"]

    def test_health_check(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("suppliers", [{"id": "sup-1"}, {"id": "sup-2"}])

        assert database.check_connection() == {"status": "healthy", "suppliers_count": 2}


class TestOrchestratorFactory:

    def test_builds_supabase_backed_orchestrator(self, mock_db, monkeypatch):
        monkeypatch.setattr(upload_orchestrator, "_upload_orchestrator", None)

        first = upload_orchestrator.get_upload_orchestrator()

        assert first is upload_orchestrator.get_upload_orchestrator()
        assert first.notifier is not None
