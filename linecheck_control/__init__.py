"""
linecheck_control - Control channel for the inspector

Bounded Context: MQTT control topic
Responsibilities:
  - MQTT connection management (control client)
  - Control message reception and logging
  - Retained lifecycle status publishing
"""

from .plane import MQTTControlPlane

__all__ = [
    "MQTTControlPlane",
]
