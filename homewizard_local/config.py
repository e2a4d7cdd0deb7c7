"""Settings of the command line tool, loaded from the environment."""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .const import (
    DEFAULT_DISCOVERY_DEBOUNCE,
    DEFAULT_MONITOR_INTERVAL,
    DEFAULT_QUICK_LOOKUP_SECONDS,
    MIN_MONITOR_INTERVAL,
)


class HomeWizardSettings(BaseSettings):
    """Configuration read from ``HOMEWIZARD_*`` variables or a ``.env`` file.

    Attributes:
        poll_interval: Seconds between monitor cycles (at least 1).
        discovery_debounce: Seconds of quiet before discovery listeners fire.
        lookup_seconds: Duration of a quick network lookup.
        log_level: Level of the stderr log handler.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOMEWIZARD_", env_file=".env", extra="ignore"
    )

    poll_interval: float = DEFAULT_MONITOR_INTERVAL
    discovery_debounce: float = DEFAULT_DISCOVERY_DEBOUNCE
    lookup_seconds: float = DEFAULT_QUICK_LOOKUP_SECONDS
    log_level: str = "INFO"

    @field_validator("poll_interval")
    @classmethod
    def poll_interval_minimum(cls, v: float) -> float:
        """Reject intervals below the monitor minimum."""
        if v < MIN_MONITOR_INTERVAL:
            raise ValueError(f"poll_interval must be >= {MIN_MONITOR_INTERVAL}, got {v}")
        return v

    @field_validator("discovery_debounce", "lookup_seconds")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level '{v}'")
        return level
