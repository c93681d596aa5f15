"""
Adaptive Configuration

Holds the feature toggles of the client application, derives optimization
suggestions from current telemetry, and resets toggles to a profile that
suits the host's memory tier.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

import psutil

from ..cache import CacheStatistics
from ..errors import ConfigurationError, UnknownToggleError
from ..events import EventType, TelemetryEventManager
from ..memory import MemoryStatistics
from .device import DeviceProfile, DeviceTier, DeviceTierBounds
from .settings import SettingsStore

logger = logging.getLogger(__name__)

COMPONENT = "adaptive_config"


class Toggle(Enum):
    """Feature toggles managed by AdaptiveConfig."""
    PERFORMANCE_MONITORING = "performance_monitoring"
    MEMORY_WARNINGS = "memory_warnings"
    NETWORK_MONITORING = "network_monitoring"
    LAZY_LOADING = "lazy_loading"
    IMAGE_CACHING = "image_caching"
    PRELOADING = "preloading"
    ANIMATION_OPTIMIZATION = "animation_optimization"


DEFAULT_TOGGLES: Dict[Toggle, bool] = {toggle: True for toggle in Toggle}

RECOMMENDED_TOGGLES = (
    Toggle.PERFORMANCE_MONITORING,
    Toggle.MEMORY_WARNINGS,
    Toggle.LAZY_LOADING,
    Toggle.IMAGE_CACHING,
)

TIER_PROFILES: Dict[DeviceTier, Dict[Toggle, bool]] = {
    DeviceTier.LOW: {
        Toggle.PERFORMANCE_MONITORING: True,
        Toggle.MEMORY_WARNINGS: True,
        Toggle.NETWORK_MONITORING: False,
        Toggle.LAZY_LOADING: True,
        Toggle.IMAGE_CACHING: False,
        Toggle.PRELOADING: False,
        Toggle.ANIMATION_OPTIMIZATION: False,
    },
    DeviceTier.MEDIUM: {
        Toggle.PERFORMANCE_MONITORING: True,
        Toggle.MEMORY_WARNINGS: True,
        Toggle.NETWORK_MONITORING: True,
        Toggle.LAZY_LOADING: True,
        Toggle.IMAGE_CACHING: True,
        Toggle.PRELOADING: True,
        Toggle.ANIMATION_OPTIMIZATION: True,
    },
    DeviceTier.HIGH: {
        Toggle.PERFORMANCE_MONITORING: True,
        Toggle.MEMORY_WARNINGS: True,
        Toggle.NETWORK_MONITORING: True,
        Toggle.LAZY_LOADING: True,
        Toggle.IMAGE_CACHING: True,
        Toggle.PRELOADING: True,
        Toggle.ANIMATION_OPTIMIZATION: False,
    },
}


@dataclass
class SuggestionThresholds:
    """Limits used when deriving optimization suggestions."""
    memory_high_percent: float = 80.0
    cache_hit_rate_low: float = 0.8
    cache_min_requests: int = 20
    test_score_low: float = 60.0

    def __post_init__(self):
        if not 0.0 < self.memory_high_percent <= 100.0:
            raise ConfigurationError("memory_high_percent must be in (0, 100]")
        if not 0.0 <= self.cache_hit_rate_low <= 1.0:
            raise ConfigurationError("cache_hit_rate_low must be in [0, 1]")
        if self.cache_min_requests < 0:
            raise ConfigurationError("cache_min_requests cannot be negative")
        if not 0.0 <= self.test_score_low <= 100.0:
            raise ConfigurationError("test_score_low must be in [0, 100]")


def _toggle_property(toggle: Toggle) -> property:
    def getter(self) -> bool:
        return self.get_toggle(toggle)

    def setter(self, value: bool) -> None:
        self.set_toggle(toggle, value)

    return property(getter, setter, doc=f"The {toggle.value} toggle.")


class AdaptiveConfig:
    """
    Owner of the feature toggle state.

    ``set_toggle`` is the only way a single toggle changes;
    ``apply_optimization_suggestions`` and ``adjust_for_device`` change
    several at once. Every actual change is handed to the persistence
    hook exactly once.
    """

    def __init__(self,
                 store: Optional[SettingsStore] = None,
                 thresholds: Optional[SuggestionThresholds] = None,
                 tier_bounds: Optional[DeviceTierBounds] = None,
                 event_manager: Optional[TelemetryEventManager] = None,
                 on_change: Optional[Callable[[Dict[str, bool]], None]] = None):
        """
        Initialize the configuration, loading stored values over the defaults.

        Args:
            store: Settings persistence backend
            thresholds: Suggestion limits
            tier_bounds: Memory bounds for device tiers
            event_manager: Optional sink for change events
            on_change: Persistence hook; defaults to ``store.save_settings``
        """
        self.store = store
        self.thresholds = thresholds or SuggestionThresholds()
        self.tier_bounds = tier_bounds or DeviceTierBounds()
        self.event_manager = event_manager

        if on_change is not None:
            self._on_change = on_change
        elif store is not None:
            self._on_change = store.save_settings
        else:
            self._on_change = None

        self._lock = threading.RLock()
        self._state: Dict[Toggle, bool] = dict(DEFAULT_TOGGLES)
        if store is not None:
            self._apply_stored(store.load_settings())

    def _apply_stored(self, stored: Dict[str, bool]) -> None:
        for name, value in stored.items():
            try:
                toggle = Toggle(name)
            except ValueError:
                logger.warning(f"Ignoring unknown stored toggle '{name}'")
                continue
            if not isinstance(value, bool):
                logger.warning(f"Ignoring non-boolean stored value for '{name}': {value!r}")
                continue
            self._state[toggle] = value

    @staticmethod
    def _resolve(name: Union[str, Toggle]) -> Toggle:
        if isinstance(name, Toggle):
            return name
        try:
            return Toggle(name)
        except ValueError:
            raise UnknownToggleError(name) from None

    # Toggle access

    def get_toggle(self, name: Union[str, Toggle]) -> bool:
        toggle = self._resolve(name)
        with self._lock:
            return self._state[toggle]

    def set_toggle(self, name: Union[str, Toggle], value: bool) -> bool:
        """
        Set one toggle.

        Args:
            name: Toggle or its snake_case name
            value: New value

        Returns:
            True if the value changed (and was persisted), False for a no-op
        """
        toggle = self._resolve(name)
        value = bool(value)
        with self._lock:
            if self._state[toggle] == value:
                return False
            self._state[toggle] = value
            snapshot = self._snapshot()

        logger.info(f"Toggle {toggle.value} set to {value}")
        self._persist(snapshot)
        if self.event_manager:
            self.event_manager.emit(
                EventType.CONFIG_CHANGED, COMPONENT,
                message=f"{toggle.value}={value}",
                toggle=toggle.value, value=value,
            )
        return True

    def state(self) -> Dict[str, bool]:
        """Copy of the toggle state keyed by toggle name."""
        with self._lock:
            return self._snapshot()

    def _snapshot(self) -> Dict[str, bool]:
        return {toggle.value: self._state[toggle] for toggle in Toggle}

    def _persist(self, snapshot: Dict[str, bool]) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(snapshot)
        except OSError as e:
            logger.error(f"Failed to persist settings: {e}")

    performance_monitoring = _toggle_property(Toggle.PERFORMANCE_MONITORING)
    memory_warnings = _toggle_property(Toggle.MEMORY_WARNINGS)
    network_monitoring = _toggle_property(Toggle.NETWORK_MONITORING)
    lazy_loading = _toggle_property(Toggle.LAZY_LOADING)
    image_caching = _toggle_property(Toggle.IMAGE_CACHING)
    preloading = _toggle_property(Toggle.PRELOADING)
    animation_optimization = _toggle_property(Toggle.ANIMATION_OPTIMIZATION)

    # Suggestions

    def optimization_suggestions(self,
                                 memory: MemoryStatistics,
                                 cache: CacheStatistics,
                                 session=None) -> List[str]:
        """
        Derive suggestions from current telemetry and toggle state.

        The result depends only on the arguments and the toggles, and the
        rules are always evaluated in the same order.

        Args:
            memory: Latest memory statistics
            cache: Latest cache statistics
            session: Optional TestRunSession from the last probe run

        Returns:
            Suggestions in rule order
        """
        limits = self.thresholds
        state = self.state()
        suggestions: List[str] = []

        if (memory.usage_percentage > limits.memory_high_percent
                and state[Toggle.MEMORY_WARNINGS.value]):
            suggestions.append(
                f"Memory usage is high ({memory.usage_percentage:.1f}%): enable "
                f"low-memory behaviours such as lazy loading and smaller caches"
            )

        if (cache.hit_rate < limits.cache_hit_rate_low
                and cache.total_requests > limits.cache_min_requests):
            suggestions.append(
                f"Cache hit rate is {cache.hit_rate:.1%} over {cache.total_requests} "
                f"requests: increase the cache size or lengthen item TTLs"
            )

        if cache.expired_items > 0:
            suggestions.append(
                f"{cache.expired_items} cached items have expired without eviction: "
                f"review the cache eviction policy"
            )

        if session is not None and not session.is_running and session.results:
            score = session.overall_score()
            expensive = [toggle.value.replace('_', ' ') for toggle in
                         (Toggle.ANIMATION_OPTIMIZATION, Toggle.PRELOADING)
                         if state[toggle.value]]
            if score < limits.test_score_low and expensive:
                suggestions.append(
                    f"Performance test score is {score:.1f}: disable "
                    f"{' and '.join(expensive)}"
                )

        if not state[Toggle.LAZY_LOADING.value]:
            suggestions.append("Enable lazy loading to speed up long lists")

        if not state[Toggle.IMAGE_CACHING.value]:
            suggestions.append("Enable image caching to reduce network requests")

        return suggestions

    def apply_optimization_suggestions(self, session=None) -> Dict[str, bool]:
        """
        Turn on every optimization the suggestion rules recommend enabling.

        Animation optimization and preloading are left alone unless
        ``session`` is a finished run scoring below ``test_score_low``, in
        which case both are turned off. All changes are persisted together.

        Args:
            session: Optional TestRunSession from the last probe run

        Returns:
            The toggles that changed, with their new values
        """
        target = {toggle: True for toggle in RECOMMENDED_TOGGLES}
        if (session is not None and not session.is_running and session.results
                and session.overall_score() < self.thresholds.test_score_low):
            target[Toggle.ANIMATION_OPTIMIZATION] = False
            target[Toggle.PRELOADING] = False

        with self._lock:
            changed = {toggle.value: value for toggle, value in target.items()
                       if self._state[toggle] != value}
            if not changed:
                return {}
            self._state.update(target)
            snapshot = self._snapshot()

        logger.info(f"Applied optimization suggestions: {changed}")
        self._persist(snapshot)
        if self.event_manager:
            self.event_manager.emit(
                EventType.CONFIG_CHANGED, COMPONENT,
                message=f"Applied {len(changed)} optimization suggestions",
                changed=changed,
            )
        return changed

    # Device adjustment

    def adjust_for_device(self, profile: Optional[DeviceProfile] = None) -> DeviceTier:
        """
        Reset every toggle to the profile of the host's memory tier.

        This overwrites user choices. If the device cannot be inspected the
        medium profile is applied.

        Args:
            profile: Device description; detected with psutil when omitted

        Returns:
            The tier whose profile was applied
        """
        try:
            if profile is None:
                profile = DeviceProfile.detect()
            tier = self.tier_bounds.classify(profile)
        except (OSError, psutil.Error) as e:
            logger.warning(f"Device detection failed, using medium profile: {e}")
            tier = DeviceTier.MEDIUM

        with self._lock:
            self._state = dict(TIER_PROFILES[tier])
            snapshot = self._snapshot()

        logger.info(f"Adjusted configuration for {tier.value}-tier device")
        self._persist(snapshot)
        if self.event_manager:
            self.event_manager.emit(
                EventType.DEVICE_ADJUSTED, COMPONENT,
                message=f"{tier.value} tier",
                tier=tier.value, state=snapshot,
            )
        return tier
