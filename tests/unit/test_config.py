"""Unit tests for settings loading."""

from pathlib import Path

from tutor_sync.api.deps import build_orchestrator
from tutor_sync.core.config import Settings, get_settings
from tutor_sync.sync import FileCache, InMemoryCache


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TUTOR_SYNC_LOG_LEVEL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.retry_max_attempts == 3
        assert settings.retry_base_delay == 1.0
        assert settings.retry_multiplier == 3.0
        assert settings.cache_dir is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TUTOR_SYNC_RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("TUTOR_SYNC_CACHE_DIR", "/tmp/tutor-cache")
        settings = Settings(_env_file=None)
        assert settings.retry_max_attempts == 5
        assert settings.cache_dir == Path("/tmp/tutor-cache")

    def test_invalid_log_level_falls_back(self, monkeypatch):
        monkeypatch.setenv("TUTOR_SYNC_LOG_LEVEL", "chatty")
        assert Settings(_env_file=None).log_level == "INFO"

    def test_log_level_uppercased(self, monkeypatch):
        monkeypatch.setenv("TUTOR_SYNC_LOG_LEVEL", "debug")
        assert Settings(_env_file=None).log_level == "DEBUG"

    def test_negative_attempts_clamped(self, monkeypatch):
        monkeypatch.setenv("TUTOR_SYNC_RETRY_MAX_ATTEMPTS", "-2")
        assert Settings(_env_file=None).retry_max_attempts == 0


class TestBuildOrchestrator:
    """Tests for wiring the orchestrator from settings."""

    def test_memory_cache_by_default(self, monkeypatch):
        monkeypatch.delenv("TUTOR_SYNC_CACHE_DIR", raising=False)
        get_settings.cache_clear()
        try:
            orchestrator = build_orchestrator()
        finally:
            get_settings.cache_clear()
        assert isinstance(orchestrator.cache, InMemoryCache)
        assert list(orchestrator.retry_policy.delays()) == [1.0, 3.0, 9.0]

    def test_file_cache_and_policy_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TUTOR_SYNC_CACHE_DIR", str(tmp_path))
        monkeypatch.setenv("TUTOR_SYNC_RETRY_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("TUTOR_SYNC_RETRY_BASE_DELAY", "0.5")
        get_settings.cache_clear()
        try:
            orchestrator = build_orchestrator()
        finally:
            get_settings.cache_clear()
        assert isinstance(orchestrator.cache, FileCache)
        assert list(orchestrator.retry_policy.delays()) == [0.5, 1.5]
