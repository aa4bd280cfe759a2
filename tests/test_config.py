"""Unit tests for core/config.py -- Settings defaults and validation."""

from __future__ import annotations

import pytest

from core.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BCRYPT_ROUNDS", raising=False)
        settings = Settings()
        assert settings.reset_token_ttl_hours == 24
        assert settings.bcrypt_rounds == 12
        assert settings.database_url.startswith("sqlite:///")
        assert settings.log_level == "INFO"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("RESET_TOKEN_TTL_HOURS", "2")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings()
        assert settings.reset_token_ttl_hours == 2
        assert settings.database_url == "sqlite:///:memory:"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_out_of_range(self, rounds):
        with pytest.raises(ValueError, match="BCRYPT_ROUNDS"):
            Settings(bcrypt_rounds=rounds)

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError, match="RESET_TOKEN_TTL_HOURS"):
            Settings(reset_token_ttl_hours=0)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            Settings(log_level="LOUD")

    def test_empty_database_url_rejected(self):
        with pytest.raises(ValueError, match="DATABASE_URL"):
            Settings(database_url="")


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
