"""
Structured Telemetry Logging

This module provides JSON log formatting and a structured logger that
records every telemetry event published on a TelemetryEventManager.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .events import EventSeverity, TelemetryEvent, TelemetryEventManager

TELEMETRY_LOGGER_NAME = "perftune.telemetry"

_EXTRA_FIELDS = ('event_type', 'component', 'usage_percentage', 'details')


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': record.created,
            'datetime': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for attr in _EXTRA_FIELDS:
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: int = logging.INFO,
                      json_file: Optional[str] = None,
                      max_bytes: int = 10 * 1024 * 1024,
                      backup_count: int = 5) -> None:
    """
    Configure root logging for an application embedding perftune.

    Args:
        level: Minimum log level
        json_file: Optional path for an additional rotating JSON log
        max_bytes: Size at which the JSON log rotates
        backup_count: Number of rotated JSON logs to keep
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if json_file:
        Path(json_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            json_file,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        handler.setLevel(level)
        handler.setFormatter(JSONFormatter())
        logging.getLogger().addHandler(handler)


class StructuredTelemetryLogger:
    """
    Writes telemetry events as structured log records.

    Subscribes to an event manager and logs each event at a level derived
    from its severity, optionally into a dedicated rotating JSON file.
    """

    _LEVELS = {
        EventSeverity.INFO: logging.INFO,
        EventSeverity.WARNING: logging.WARNING,
        EventSeverity.CRITICAL: logging.CRITICAL,
    }

    def __init__(self,
                 event_manager: TelemetryEventManager,
                 json_file: Optional[str] = None,
                 log_level: int = logging.INFO,
                 max_log_size: int = 10 * 1024 * 1024,
                 backup_count: int = 5):
        self.event_manager = event_manager
        self.log_level = log_level
        self.logger = logging.getLogger(TELEMETRY_LOGGER_NAME)
        self._handler: Optional[logging.Handler] = None
        self._events_logged = 0

        if json_file:
            Path(json_file).parent.mkdir(parents=True, exist_ok=True)
            self._handler = logging.handlers.RotatingFileHandler(
                json_file,
                maxBytes=max_log_size,
                backupCount=backup_count
            )
            self._handler.setLevel(log_level)
            self._handler.setFormatter(JSONFormatter())
            self.logger.addHandler(self._handler)

        self._subscription_id = event_manager.subscribe(self.log_event)

    def log_event(self, event: TelemetryEvent) -> None:
        """Log a telemetry event with appropriate level and context."""
        level = self._LEVELS.get(event.severity, logging.INFO)
        if level < self.log_level:
            return

        extra = {
            'event_type': event.event_type.value,
            'component': event.source_component,
            'details': event.details,
        }
        if 'usage_percentage' in event.details:
            extra['usage_percentage'] = event.details['usage_percentage']

        self.logger.log(level, self._format_event_message(event), extra=extra)
        self._events_logged += 1

    @staticmethod
    def _format_event_message(event: TelemetryEvent) -> str:
        """Format an event into a human-readable message."""
        title = event.event_type.value.replace('_', ' ').title()
        if event.message:
            return f"{title}: {event.message}"
        return title

    def get_log_statistics(self) -> Dict[str, Any]:
        """Get logging statistics."""
        return {
            'events_logged': self._events_logged,
            'log_level': logging.getLevelName(self.log_level),
            'json_file': getattr(self._handler, 'baseFilename', None),
        }

    def close(self) -> None:
        """Unsubscribe and close the JSON handler."""
        self.event_manager.unsubscribe(self._subscription_id)
        if self._handler is not None:
            self._handler.flush()
            self.logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
