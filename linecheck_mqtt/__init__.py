"""
linecheck MQTT Communication Package
====================================

Bounded Context: Defect telemetry over MQTT

Architecture:
- schemas/: Immutable wire messages (DefectMessage)
- publishers/: Message producers (DefectPublisher)
- logging/: Structured JSON logging for observability

Public API
----------
Schemas:
    DefectMessage

Publishers:
    BasePublisher, DefectPublisher

Logging:
    LogEvent, StructuredLogger, create_logger

Example:
    >>> from linecheck_mqtt import DefectPublisher, DefectMessage, create_logger
    >>>
    >>> publisher = DefectPublisher(
    ...     broker_host="localhost",
    ...     topic="defects/counter",
    ...     logger=create_logger("telemetry")
    ... )
    >>> publisher.connect()
    >>> publisher.publish_defect(DefectMessage(defect=True))   # {"Defect": "1"}
"""

__version__ = "1.0.0"

from .schemas import DEFECT_KEY, DefectMessage

from .publishers import (
    BasePublisher,
    DefectPublisher,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

__all__ = [
    '__version__',
    # Schemas
    'DEFECT_KEY',
    'DefectMessage',
    # Publishers
    'BasePublisher',
    'DefectPublisher',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
