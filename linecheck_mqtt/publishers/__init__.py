"""
MQTT Publishers
==============

Bounded Context: Message Production

Public API
----------
    BasePublisher: Abstract publisher (connection management)
    DefectPublisher: Defect verdict publisher
"""

from .base import BasePublisher
from .defect import DefectPublisher

__all__ = [
    'BasePublisher',
    'DefectPublisher',
]
