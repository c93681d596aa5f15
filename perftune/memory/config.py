"""Configuration for the memory monitor."""

import logging
import os
from dataclasses import dataclass

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class MemoryConfig:
    """Configuration for memory monitoring and low-memory detection.

    Args:
        low_memory_threshold_percent: Usage percentage above which the
            monitor enters low-memory mode (strictly greater than)
        hysteresis_percent: Extra margin below the threshold a sample must
            reach before low-memory mode is left
        interval_seconds: Sampling interval for the background thread
        emergency_cleanup: Run cleanup handlers when the host signals memory
            pressure
    """
    low_memory_threshold_percent: float = 80.0
    hysteresis_percent: float = 0.0
    interval_seconds: float = 5.0
    emergency_cleanup: bool = True

    def __post_init__(self):
        """Validate configuration parameters."""
        if not 0.0 < self.low_memory_threshold_percent <= 100.0:
            raise ConfigurationError("low_memory_threshold_percent must be in (0, 100]")

        if not 0.0 <= self.hysteresis_percent < self.low_memory_threshold_percent:
            raise ConfigurationError(
                "hysteresis_percent must be non-negative and below the threshold"
            )

        if self.interval_seconds <= 0:
            raise ConfigurationError("interval_seconds must be positive")

    @property
    def recovery_threshold_percent(self) -> float:
        """Usage a sample must fall below to leave low-memory mode."""
        return self.low_memory_threshold_percent - self.hysteresis_percent


def load_memory_config_from_env() -> MemoryConfig:
    """Load memory configuration, letting environment variables override defaults."""
    config = MemoryConfig()

    if os.environ.get("PERFTUNE_MEMORY_THRESHOLD"):
        config.low_memory_threshold_percent = float(os.environ["PERFTUNE_MEMORY_THRESHOLD"])
    if os.environ.get("PERFTUNE_MEMORY_HYSTERESIS"):
        config.hysteresis_percent = float(os.environ["PERFTUNE_MEMORY_HYSTERESIS"])
    if os.environ.get("PERFTUNE_MEMORY_INTERVAL"):
        config.interval_seconds = float(os.environ["PERFTUNE_MEMORY_INTERVAL"])
    if os.environ.get("PERFTUNE_EMERGENCY_CLEANUP"):
        config.emergency_cleanup = (
            os.environ["PERFTUNE_EMERGENCY_CLEANUP"].lower() in ('true', '1', 'yes', 'on')
        )

    # Re-run validation on the overridden values
    config.__post_init__()
    logger.debug(f"Memory config loaded: {config}")
    return config
