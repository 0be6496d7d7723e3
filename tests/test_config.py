"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from bakery_ledger.config import GeminiSettings, LedgerSettings, validate_all_settings


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("LEDGER_LOG_LEVEL", "LEDGER_LOG_FORMAT", "LEDGER_EXPORT_DIR", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestLedgerSettings:

    def test_defaults(self):
        settings = LedgerSettings()
        assert settings.currency == "AED"
        assert settings.app_id == "baking-app-default"
        assert settings.export_dir == Path("exports")
        assert settings.log_format == "json"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "debug")
        monkeypatch.setenv("LEDGER_EXPORT_DIR", "/tmp/reports")
        settings = LedgerSettings()
        assert settings.log_level == "DEBUG"
        assert settings.export_dir == Path("/tmp/reports")

    def test_rejects_unknown_log_format(self, monkeypatch):
        monkeypatch.setenv("LEDGER_LOG_FORMAT", "xml")
        with pytest.raises(ValidationError):
            LedgerSettings()


class TestGeminiSettings:

    def test_api_key_required(self):
        with pytest.raises(ValidationError):
            GeminiSettings()

    def test_reads_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("GEMINI_API_KEY=test-key\n", encoding="utf-8")
        settings = GeminiSettings()
        assert settings.api_key == "test-key"
        assert settings.temperature == 0.1


class TestValidateAllSettings:

    def test_reports_missing_sections(self):
        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["gemini"] is False
        assert "gemini_error" in results
