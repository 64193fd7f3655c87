"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment variables
- .env and .env.<env> files
"""

import pytest

from logsvc.logvault_server.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove LOGVAULT_* variables inherited from the outer environment."""
    import os

    for key in list(os.environ):
        if key.startswith("LOGVAULT_"):
            monkeypatch.delenv(key)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()
        assert settings.db_path == "logvault.db"
        assert settings.port == 8080
        assert settings.request_timeout == 10.0
        assert settings.provision_on_startup is True
        assert settings.log_format == "json"

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("LOGVAULT_DB_PATH", "/tmp/other.db")
        monkeypatch.setenv("LOGVAULT_PORT", "9001")
        monkeypatch.setenv("LOGVAULT_WAL_MODE", "false")

        settings = Settings()

        assert settings.db_path == "/tmp/other.db"
        assert settings.port == 9001
        assert settings.wal_mode is False

    def test_env_files(self, tmp_path, monkeypatch):
        """.env.<env> values override .env values."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("LOGVAULT_PORT=7000\nLOGVAULT_LOG_LEVEL=DEBUG\n")
        (tmp_path / ".env.staging").write_text("LOGVAULT_PORT=7001\nUNRELATED=1\n")

        settings = Settings.load("staging")

        assert settings.port == 7001
        assert settings.log_level == "DEBUG"

    def test_env_var_wins_over_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("LOGVAULT_PORT=7000\n")
        monkeypatch.setenv("LOGVAULT_PORT", "7500")

        assert Settings.load().port == 7500

    def test_missing_env_files(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert Settings.load("prod").port == 8080
