"""
Configuration management for the perftune CLI.

Handles loading CLI settings from a JSON file and environment variables.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CLIConfig:
    """Manages CLI configuration settings."""

    DEFAULT_CONFIG = {
        # Toggle persistence
        'settings_path': None,  # ~/.perftune/settings.json if None

        # Output formatting
        'output_format': 'table',  # table, json
        'color_output': True,

        # CLI behavior
        'verbose': False,
        'quiet': False,
        'json_log_file': None,

        # Probe runs
        'cooldown_seconds': 0.5,
        'probe_timeout_seconds': None,
    }

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, uses default locations.
        """
        self._config = self.DEFAULT_CONFIG.copy()
        self._config_file = config_file or self._find_config_file()
        self._load_config()

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations."""
        config_locations = [
            Path.cwd() / '.perftune.json',
            Path.home() / '.perftune.json',
            Path.home() / '.config' / 'perftune.json',
        ]

        for config_path in config_locations:
            if config_path.exists() and config_path.is_file():
                logger.debug(f"Found config file: {config_path}")
                return str(config_path)

        return None

    def _load_config(self):
        """Load configuration from file and environment variables."""
        if self._config_file and os.path.exists(self._config_file):
            try:
                with open(self._config_file, 'r') as f:
                    self._config.update(json.load(f))
                logger.debug(f"Loaded config from {self._config_file}")
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Failed to load config file {self._config_file}: {e}")

        self._load_env_config()

    def _load_env_config(self):
        """Load configuration from environment variables."""
        env_mappings = {
            'PERFTUNE_SETTINGS_PATH': 'settings_path',
            'PERFTUNE_OUTPUT_FORMAT': 'output_format',
            'PERFTUNE_COLOR': 'color_output',
            'PERFTUNE_VERBOSE': 'verbose',
            'PERFTUNE_QUIET': 'quiet',
            'PERFTUNE_LOG_FILE': 'json_log_file',
            'PERFTUNE_COOLDOWN': 'cooldown_seconds',
            'PERFTUNE_PROBE_TIMEOUT': 'probe_timeout_seconds',
        }

        for env_var, config_key in env_mappings.items():
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue

            if config_key in ('color_output', 'verbose', 'quiet'):
                self._config[config_key] = env_value.lower() in ('true', '1', 'yes', 'on')
            elif config_key in ('cooldown_seconds', 'probe_timeout_seconds'):
                try:
                    self._config[config_key] = float(env_value)
                except ValueError:
                    logger.warning(f"Invalid number for {config_key}: {env_value}")
            else:
                self._config[config_key] = env_value

    def settings_path(self) -> Path:
        """Where toggle settings are persisted."""
        configured = self._config.get('settings_path')
        if configured:
            return Path(configured).expanduser()
        return Path.home() / '.perftune' / 'settings.json'

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self._config[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return self._config.copy()

    def __repr__(self):
        return f"CLIConfig(config_file={self._config_file})"
