"""Tests for environment-driven settings."""

import pytest
from ropa_core.settings import ComplianceSettings, DatabaseSettings, OTelSettings


class TestSettings:
    def test_compliance_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ROPA_HIERARCHY_MAX_DEPTH", raising=False)
        monkeypatch.delenv("ROPA_ENFORCE_TRANSFER_MECHANISM", raising=False)
        settings = ComplianceSettings()
        assert settings.hierarchy_max_depth == 10
        assert settings.enforce_transfer_mechanism is False

    def test_compliance_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROPA_HIERARCHY_MAX_DEPTH", "4")
        monkeypatch.setenv("ROPA_ENFORCE_TRANSFER_MECHANISM", "true")
        settings = ComplianceSettings()
        assert settings.hierarchy_max_depth == 4
        assert settings.enforce_transfer_mechanism is True

    def test_database_url_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db:5432/ropa")
        assert DatabaseSettings().url == "postgresql+asyncpg://u:p@db:5432/ropa"

    def test_otel_disabled_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OTEL_ENABLED", raising=False)
        assert OTelSettings().enabled is False
