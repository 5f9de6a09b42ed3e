"""Tests for environment-driven settings."""

from storeauth.core.config import Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.decision_timeout_ms == 250
        assert settings.decision_timeout_seconds == 0.25
        assert settings.audit_allows is False
        assert settings.hierarchy_file is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("STOREAUTH_DECISION_TIMEOUT_MS", "50")
        monkeypatch.setenv("STOREAUTH_AUDIT_ALLOWS", "true")

        settings = Settings(_env_file=None)

        assert settings.decision_timeout_seconds == 0.05
        assert settings.audit_allows is True
