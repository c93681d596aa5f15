"""Device capability detection and memory tier classification."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import psutil

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

GIB = 1024 ** 3


class DeviceTier(Enum):
    """Memory class of the host device."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class DeviceProfile:
    """Capabilities of the host that drive toggle defaults."""
    total_memory_bytes: int
    cpu_count: Optional[int] = None

    @classmethod
    def detect(cls) -> 'DeviceProfile':
        """Describe the current host using psutil."""
        return cls(
            total_memory_bytes=psutil.virtual_memory().total,
            cpu_count=psutil.cpu_count(),
        )

    @property
    def total_memory_gb(self) -> float:
        return self.total_memory_bytes / GIB


@dataclass
class DeviceTierBounds:
    """Upper memory bounds (exclusive) of the low and medium tiers."""
    low_max_bytes: int = 2 * GIB
    medium_max_bytes: int = 4 * GIB

    def __post_init__(self):
        if self.low_max_bytes <= 0:
            raise ConfigurationError("low_max_bytes must be positive")
        if self.medium_max_bytes <= self.low_max_bytes:
            raise ConfigurationError("medium_max_bytes must exceed low_max_bytes")

    def classify(self, profile: DeviceProfile) -> DeviceTier:
        if profile.total_memory_bytes < self.low_max_bytes:
            return DeviceTier.LOW
        if profile.total_memory_bytes < self.medium_max_bytes:
            return DeviceTier.MEDIUM
        return DeviceTier.HIGH
