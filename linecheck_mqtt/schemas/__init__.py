"""
linecheck MQTT Schemas
=====================

Bounded Context: Data Structures

Frozen dataclasses with to_dict()/from_dict() for the telemetry topic.

Public API
----------
    DefectMessage: Defect verdict telemetry message
"""

from .defect import DEFECT_KEY, DefectMessage

__all__ = [
    'DEFECT_KEY',
    'DefectMessage',
]
