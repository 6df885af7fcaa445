"""Unit tests for settings and logging configuration."""

import sys

import pytest
from loguru import logger
from pydantic import ValidationError

from taskforge.core.config import Settings, clear_settings_cache, get_settings
from taskforge.core.logging import configure_logging


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        """Test built-in defaults."""
        settings = Settings(_env_file=None)

        assert settings.taskforge_max_concurrent_executions == 5
        assert settings.taskforge_stuck_task_threshold_seconds == 30.0
        assert settings.taskforge_default_timeout_ms == 300_000
        assert settings.taskforge_default_workflow == "standard"

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test values are read from the environment."""
        monkeypatch.setenv("TASKFORGE_MAX_CONCURRENT_EXECUTIONS", "2")
        monkeypatch.setenv("TASKFORGE_STUCK_TASK_THRESHOLD_SECONDS", "90")

        settings = Settings(_env_file=None)

        assert settings.taskforge_max_concurrent_executions == 2
        assert settings.taskforge_stuck_task_threshold_seconds == 90.0

    def test_bounds(self) -> None:
        """Test out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, taskforge_max_concurrent_executions=0)

    def test_api_key_is_secret(self) -> None:
        """Test the key is not shown in reprs."""
        settings = Settings(_env_file=None, anthropic_api_key="sk-secret")

        assert "sk-secret" not in repr(settings)
        assert settings.anthropic_api_key.get_secret_value() == "sk-secret"

    def test_cached(self) -> None:
        """Test get_settings caches until cleared."""
        first = get_settings()

        assert get_settings() is first
        clear_settings_cache()
        assert get_settings() is not first


class TestLogging:
    """Tests for configure_logging."""

    def test_file_sink(self, tmp_path) -> None:
        """Test a log file is written under the log directory."""
        settings = Settings(_env_file=None, taskforge_log_dir=str(tmp_path / "logs"))

        try:
            configure_logging(settings)
            logger.info("hello from the test")
            logger.complete()
        finally:
            logger.remove()
            logger.add(sys.stderr)

        [log_file] = (tmp_path / "logs").glob("taskforge_*.log")
        assert "hello from the test" in log_file.read_text()
