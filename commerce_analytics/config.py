"""Engine settings.

Settings are a pydantic-settings model so values read from the environment
are coerced and range-checked in one place. Every field can be set through a
``COMMERCE_ANALYTICS_``-prefixed variable.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from commerce_analytics import logging_config
from commerce_analytics.errors import ConfigurationError
from commerce_analytics.window.partition import DEFAULT_PARALLEL_THRESHOLD, ParallelOptions

ENV_PREFIX = "COMMERCE_ANALYTICS_"


class EngineSettings(BaseSettings):
    """Tunable parameters for :class:`~commerce_analytics.engine.AnalyticsEngine`."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        frozen=True,
    )

    rfm_bins: int = Field(default=5, ge=1, description="Number of RFM score buckets")
    basket_min_support: int = Field(
        default=3, ge=1, description="Minimum orders a product pair must appear in"
    )
    basket_max_items_per_order: int = Field(
        default=200, ge=1, description="Orders with more line items skip basket analysis"
    )
    parallel_enabled: bool = Field(
        default=True, description="Evaluate independent partitions on a thread pool"
    )
    parallel_threshold: int = Field(
        default=DEFAULT_PARALLEL_THRESHOLD,
        ge=1,
        description="Minimum partition count before the thread pool is used",
    )
    n_workers: Optional[int] = Field(
        default=None, ge=1, description="Thread pool size (None = CPU count)"
    )
    log_level: str = Field(default="INFO", description="Log level name")
    log_json: bool = Field(default=True, description="Render logs as JSON")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from ``COMMERCE_ANALYTICS_*`` variables.

        ``COMMERCE_ANALYTICS_RFM_BINS=4`` sets ``rfm_bins``, and so on.
        Unset or empty variables keep their defaults.

        Raises
        ------
        ConfigurationError
            If a variable cannot be coerced or is out of range.
        """
        try:
            return cls()
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid engine settings from environment: {exc}") from exc

    def configure_logging(self) -> None:
        """Apply ``log_level`` and ``log_json`` to structlog and stdlib logging."""
        logging_config.configure_logging(self.log_level, json_logs=self.log_json)

    def parallel_options(self) -> ParallelOptions:
        return ParallelOptions(
            enabled=self.parallel_enabled,
            threshold=self.parallel_threshold,
            n_workers=self.n_workers,
        )
