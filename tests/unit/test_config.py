"""
Unit tests for grant_discovery/common/config.py
"""

import pytest

from grant_discovery.common.config import Config, _env_float, _env_int


class TestEnvHelpers:
    def test_int_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("SOME_INT", raising=False)
        assert _env_int("SOME_INT", 7) == 7

    def test_int_default_when_blank(self, monkeypatch):
        monkeypatch.setenv("SOME_INT", "  ")
        assert _env_int("SOME_INT", 7) == 7

    def test_int_parsed(self, monkeypatch):
        monkeypatch.setenv("SOME_INT", "12")
        assert _env_int("SOME_INT", 7) == 12

    def test_float_parsed(self, monkeypatch):
        monkeypatch.setenv("SOME_FLOAT", "0.75")
        assert _env_float("SOME_FLOAT", 0.3) == 0.75


class TestConfigValidate:
    """Tests for Config.validate."""

    def test_valid(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
        Config.validate()

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", "")
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            Config.validate()

    @pytest.mark.parametrize("name", ["ENRICHMENT_BATCH_SIZE", "ENRICHMENT_MAX_ATTEMPTS", "CACHE_TTL_DAYS"])
    def test_out_of_range(self, monkeypatch, name):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(Config, name, 0)
        with pytest.raises(ValueError, match=name):
            Config.validate()


class TestConfigHelpers:
    def test_mongodb_cache_toggle(self, monkeypatch):
        monkeypatch.setattr(Config, "MONGODB_URI", "")
        assert Config.use_mongodb_cache() is False
        monkeypatch.setattr(Config, "MONGODB_URI", "mongodb://localhost:27017")
        assert Config.use_mongodb_cache() is True

    def test_base_url_none_when_blank(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_BASE_URL", "")
        assert Config.get_llm_base_url() is None

    def test_summary_hides_secrets(self, monkeypatch):
        monkeypatch.setattr(Config, "OPENAI_API_KEY", "sk-very-secret")
        summary = Config.summary()
        assert "sk-very-secret" not in summary
        assert "Enrichment cache" in summary
