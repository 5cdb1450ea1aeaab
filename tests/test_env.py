"""
Tests for settings and .env loading.
"""

import os

import pytest

from etymofill.env import Settings, load_env
from etymofill.languages import language_key


class TestSettings:
    """Test Settings.from_env."""

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.default_workers == 5
        assert settings.max_workers == 100
        assert settings.default_delay_ms == 3000
        assert settings.max_retries == 3
        assert settings.rate_limit_backoff == 60.0
        assert settings.default_language == "Korean"

    def test_overrides(self):
        settings = Settings.from_env({
            "DATABASE_URL": "sqlite:///tmp/x.db",
            "LLM_PROXY_URL": "http://localhost:9000",
            "LLM_TIMEOUT": "30",
            "FILL_DEFAULT_WORKERS": "8",
            "FILL_MAX_WORKERS": "20",
            "FILL_DEFAULT_DELAY_MS": "500",
            "FILL_RATE_LIMIT_BACKOFF": "1.5",
            "LOG_LEVEL": "DEBUG",
        })

        assert settings.database_url == "sqlite:///tmp/x.db"
        assert settings.llm_proxy_url == "http://localhost:9000"
        assert settings.llm_timeout == 30.0
        assert settings.default_workers == 8
        assert settings.max_workers == 20
        assert settings.default_delay_ms == 500
        assert settings.rate_limit_backoff == 1.5
        assert settings.log_level == "DEBUG"

    def test_blank_values_use_defaults(self):
        settings = Settings.from_env({"FILL_DEFAULT_WORKERS": " ", "DATABASE_URL": ""})

        assert settings.default_workers == 5
        assert settings.database_url == Settings().database_url

    def test_invalid_number(self):
        with pytest.raises(ValueError, match="FILL_DEFAULT_WORKERS"):
            Settings.from_env({"FILL_DEFAULT_WORKERS": "many"})

        with pytest.raises(ValueError, match="LLM_TIMEOUT"):
            Settings.from_env({"LLM_TIMEOUT": "soon"})

    def test_out_of_range_values(self):
        with pytest.raises(ValueError, match="FILL_MAX_WORKERS must be at least 1, got 0"):
            Settings.from_env({"FILL_MAX_WORKERS": "0"})

        with pytest.raises(ValueError, match="FILL_DEFAULT_WORKERS must be at least 1"):
            Settings.from_env({"FILL_DEFAULT_WORKERS": "-2"})

        with pytest.raises(ValueError, match="FILL_MAX_RETRIES must be at least 0, got -1"):
            Settings.from_env({"FILL_MAX_RETRIES": "-1"})

        assert Settings.from_env({"FILL_MAX_RETRIES": "0"}).max_retries == 0

    def test_default_workers_capped_by_max(self):
        settings = Settings.from_env({"FILL_DEFAULT_WORKERS": "10", "FILL_MAX_WORKERS": "4"})

        assert settings.resolve_workers(None) == 4

    def test_resolve_workers(self):
        settings = Settings()

        assert settings.resolve_workers(None) == 5
        assert settings.resolve_workers(0) == 5
        assert settings.resolve_workers(-3) == 5
        assert settings.resolve_workers(12) == 12
        assert settings.resolve_workers(500) == 100

    def test_resolve_delay(self):
        settings = Settings()

        assert settings.resolve_delay_ms(None) == 3000
        assert settings.resolve_delay_ms(0) == 3000
        assert settings.resolve_delay_ms(250) == 250


class TestLoadEnv:
    def test_missing_file(self, tmp_path):
        assert load_env(tmp_path / ".env") is False

    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ETYMOFILL_TEST_NEW", raising=False)
        monkeypatch.setenv("ETYMOFILL_TEST_SET", "from-shell")
        env_file = tmp_path / ".env"
        env_file.write_text("ETYMOFILL_TEST_NEW=from-file\nETYMOFILL_TEST_SET=from-file\n")

        try:
            assert load_env(env_file) is True
            assert os.environ["ETYMOFILL_TEST_NEW"] == "from-file"
            assert os.environ["ETYMOFILL_TEST_SET"] == "from-shell"
        finally:
            os.environ.pop("ETYMOFILL_TEST_NEW", None)


class TestLanguageKey:
    """Test display name to partition key mapping."""

    def test_known_languages(self):
        assert language_key("Korean") == "ko"
        assert language_key("japanese") == "ja"
        assert language_key(" CHINESE ") == "zh"

    def test_unknown_language_uses_prefix(self):
        assert language_key("French") == "fr"
        assert language_key("Vietnamese") == "vi"

    def test_too_short_falls_back(self):
        assert language_key("") == "ko"
        assert language_key("x") == "ko"
        assert language_key(None) == "ko"
