"""Tests for BatchSettings and the settings cache."""

import pytest
from pydantic import ValidationError

from batchproc.core.settings import BatchSettings, clear_settings_cache, get_settings


class TestBatchSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = BatchSettings()

        assert settings.max_concurrent == 4
        assert settings.poll_interval == 0.1
        assert settings.default_timeout == 60.0
        assert settings.log_level == "INFO"
        assert settings.log_format == "console"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BATCHPROC_MAX_CONCURRENT", "8")
        monkeypatch.setenv("BATCHPROC_POLL_INTERVAL", "0.25")
        monkeypatch.setenv("BATCHPROC_LOG_FORMAT", "json")

        settings = BatchSettings()

        assert settings.max_concurrent == 8
        assert settings.poll_interval == 0.25
        assert settings.log_format == "json"

    def test_dotenv_file(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("BATCHPROC_DEFAULT_TIMEOUT=15\n")
        monkeypatch.chdir(tmp_path)

        assert BatchSettings().default_timeout == 15.0

    def test_unrelated_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("BATCHPROC_SOMETHING_ELSE", "x")
        BatchSettings()

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_concurrent", -1),
            ("poll_interval", -0.1),
            ("default_timeout", 0),
            ("log_format", "xml"),
        ],
    )
    def test_validation(self, field, value):
        with pytest.raises(ValidationError):
            BatchSettings(**{field: value})

    def test_zero_concurrency_allowed(self):
        assert BatchSettings(max_concurrent=0).max_concurrent == 0

    def test_timeout_can_be_disabled(self):
        assert BatchSettings(default_timeout=None).default_timeout is None


class TestSettingsCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache_reloads(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("BATCHPROC_MAX_CONCURRENT", "2")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.max_concurrent == 2
