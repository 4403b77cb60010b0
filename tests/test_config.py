"""Tests for engine settings."""

import json

import pytest
import structlog
from pydantic import ValidationError

from commerce_analytics.config import ENV_PREFIX, EngineSettings
from commerce_analytics.engine import AnalyticsEngine
from commerce_analytics.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in EngineSettings.model_fields:
        monkeypatch.delenv(ENV_PREFIX + name.upper(), raising=False)


class TestEngineSettings:
    """Test defaults, validation and environment loading."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.rfm_bins == 5
        assert settings.basket_min_support == 3
        assert settings.basket_max_items_per_order == 200
        assert settings.parallel_enabled is True
        assert settings.n_workers is None
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    def test_log_level_normalised(self):
        assert EngineSettings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError, match="Unknown log level"):
            EngineSettings(log_level="verbose")

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            EngineSettings(rfm_bins=0)

    def test_frozen(self):
        settings = EngineSettings()
        with pytest.raises(ValidationError):
            settings.rfm_bins = 3

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("COMMERCE_ANALYTICS_RFM_BINS", "4")
        monkeypatch.setenv("COMMERCE_ANALYTICS_PARALLEL_ENABLED", "false")
        monkeypatch.setenv("COMMERCE_ANALYTICS_LOG_LEVEL", "warning")
        monkeypatch.setenv("UNRELATED", "1")
        settings = EngineSettings.from_env()
        assert settings.rfm_bins == 4
        assert settings.parallel_enabled is False
        assert settings.log_level == "WARNING"

    def test_empty_variable_keeps_default(self, monkeypatch):
        monkeypatch.setenv("COMMERCE_ANALYTICS_N_WORKERS", "")
        assert EngineSettings.from_env().n_workers is None

    def test_from_env_invalid_value(self, monkeypatch):
        monkeypatch.setenv("COMMERCE_ANALYTICS_BASKET_MIN_SUPPORT", "0")
        with pytest.raises(ConfigurationError, match="Invalid engine settings"):
            EngineSettings.from_env()

    def test_explicit_values_override_environment(self, monkeypatch):
        monkeypatch.setenv("COMMERCE_ANALYTICS_RFM_BINS", "4")
        assert EngineSettings(rfm_bins=3).rfm_bins == 3

    def test_parallel_options(self):
        options = EngineSettings(
            parallel_enabled=False, parallel_threshold=10, n_workers=2
        ).parallel_options()
        assert options.enabled is False
        assert options.threshold == 10
        assert options.workers() == 2


class TestLoggingSettings:
    """Test that log settings reach structlog."""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_rendering(self, capsys):
        EngineSettings(log_level="info", log_json=True).configure_logging()
        structlog.get_logger("test").info("stage_completed", stage="rfm_scoring")

        event = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert event["event"] == "stage_completed"
        assert event["level"] == "info"

    def test_console_rendering(self, capsys):
        EngineSettings(log_json=False).configure_logging()
        structlog.get_logger("test").info("stage_completed")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert "stage_completed" in line
        with pytest.raises(json.JSONDecodeError):
            json.loads(line)

    def test_level_filters_events(self, capsys):
        EngineSettings(log_level="WARNING").configure_logging()
        logger = structlog.get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_engine_applies_settings_when_asked(self, capsys):
        AnalyticsEngine(EngineSettings(log_level="ERROR"), configure_logs=True)
        logger = structlog.get_logger("test")
        logger.warning("hidden")
        logger.error("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err
