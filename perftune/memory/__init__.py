"""Memory monitoring: sampling, low-memory detection and cleanup."""

from .config import MemoryConfig, load_memory_config_from_env
from .monitor import (
    HostMemoryProvider,
    MemoryMonitor,
    MemoryState,
    MemoryStateTransition,
    MemoryStatistics,
    PsutilHostMemory,
)

__all__ = [
    'MemoryConfig',
    'load_memory_config_from_env',
    'HostMemoryProvider',
    'PsutilHostMemory',
    'MemoryMonitor',
    'MemoryState',
    'MemoryStateTransition',
    'MemoryStatistics',
]
