"""
Structured Logging for linecheck MQTT
=====================================

Bounded Context: Observability

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from linecheck_mqtt.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="telemetry")
    >>> logger.info(
    ...     event=LogEvent.DEFECT_PUBLISHED,
    ...     message="Published defect verdict",
    ...     metadata={'topic': 'defects/counter', 'payload': '{"Defect": "0"}'}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
