"""
JSON-line logger for the inspector's MQTT traffic.

Each call emits one JSON document, e.g.

    {"timestamp": "2026-10-19T15:30:45.123456+00:00", "level": "INFO",
     "component": "telemetry", "event": "mqtt.publish.success",
     "message": "MQTT message published to topic: defects/counter",
     "metadata": {"topic": "defects/counter", "payload": "{\"Defect\": \"0\"}"}}

Records go to a dedicated stderr handler and do not propagate, so the
console format configured by run_inspector.py is not applied twice.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from .events import LogEvent


class StructuredLogger:
    """
    Logger named linecheck_mqtt.<component> that writes JSON lines.

    Args:
        component: "telemetry", "control", ...
        level: Minimum level emitted
        logger_name: Override of the stdlib logger name
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None
    ):
        self.component = component
        self.logger_name = logger_name or f"linecheck_mqtt.{component}"
        self.logger = logging.getLogger(self.logger_name)
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def _log(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[Exception] = None
    ) -> None:
        log_level = getattr(logging, level)
        if not self.logger.isEnabledFor(log_level):
            return

        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'event': event.value,
            'message': message,
        }
        if metadata:
            entry['metadata'] = metadata
        if exc_info:
            entry['exception'] = {'type': type(exc_info).__name__, 'message': str(exc_info)}

        self.logger.log(log_level, json.dumps(entry, default=str))

    def debug(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log('DEBUG', event, message, metadata)

    def info(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log('INFO', event, message, metadata)

    def warning(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log('WARNING', event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[Exception] = None
    ) -> None:
        """Like info(), plus the exception's type and message when given."""
        self._log('ERROR', event, message, metadata, exc_info)


class JSONFormatter(logging.Formatter):
    """Emits the record message unchanged; it is already JSON."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_logger(component: str, level: int = logging.INFO) -> StructuredLogger:
    return StructuredLogger(component=component, level=level)
