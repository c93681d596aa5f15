"""
Settings persistence for adaptive toggles.

Stores exchange plain ``{toggle_name: bool}`` mappings so the adaptive
configuration never depends on a particular storage format.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Union

logger = logging.getLogger(__name__)


class SettingsStore(ABC):
    """Abstract persistence backend for toggle state."""

    @abstractmethod
    def load_settings(self) -> Dict[str, bool]:
        """Return previously saved toggle values, or an empty mapping."""

    @abstractmethod
    def save_settings(self, state: Dict[str, bool]) -> None:
        """Persist the complete toggle state."""


class InMemorySettingsStore(SettingsStore):
    """Keeps settings in the process; useful for tests and embedding."""

    def __init__(self, initial: Dict[str, bool] = None):
        self._settings: Dict[str, bool] = dict(initial or {})
        self.save_count = 0

    def load_settings(self) -> Dict[str, bool]:
        return dict(self._settings)

    def save_settings(self, state: Dict[str, bool]) -> None:
        self._settings = dict(state)
        self.save_count += 1


class JSONSettingsStore(SettingsStore):
    """Stores settings as a JSON object in a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load_settings(self) -> Dict[str, bool]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings from {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self.path}: expected a JSON object")
            return {}

        settings = {}
        for key, value in data.items():
            if isinstance(value, bool):
                settings[str(key)] = value
            else:
                logger.warning(f"Ignoring non-boolean setting '{key}' in {self.path}: {value!r}")
        return settings

    def save_settings(self, state: Dict[str, bool]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(state, f, indent=2)
        logger.debug(f"Saved settings to {self.path}")
