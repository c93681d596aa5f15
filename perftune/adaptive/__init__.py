"""Adaptive feature toggles, device tiers and settings persistence."""

from .config import (
    DEFAULT_TOGGLES,
    TIER_PROFILES,
    AdaptiveConfig,
    SuggestionThresholds,
    Toggle,
)
from .device import DeviceProfile, DeviceTier, DeviceTierBounds
from .settings import InMemorySettingsStore, JSONSettingsStore, SettingsStore

__all__ = [
    'AdaptiveConfig',
    'SuggestionThresholds',
    'Toggle',
    'DEFAULT_TOGGLES',
    'TIER_PROFILES',
    'DeviceProfile',
    'DeviceTier',
    'DeviceTierBounds',
    'SettingsStore',
    'JSONSettingsStore',
    'InMemorySettingsStore',
]
