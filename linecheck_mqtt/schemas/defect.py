"""
Defect Message Schema
=====================

Bounded Context: Telemetry Data Structures

Wire format of the defect telemetry topic:

    {"Defect": "0"}    part accepted or no part in view
    {"Defect": "1"}    part area out of bounds

The flag is transported as a string, not a JSON boolean or number.

Message Flow:
    VerdictState → DefectMessage → DefectPublisher → MQTT Broker
"""

from dataclasses import dataclass
from typing import Dict, Any

DEFECT_KEY = "Defect"


@dataclass(frozen=True)
class DefectMessage:
    """
    Immutable telemetry message for one defect verdict.

    Attributes:
        defect: True if the last analyzed part was out of bounds

    Example:
        >>> DefectMessage(defect=True).to_dict()
        {'Defect': '1'}
    """
    defect: bool

    def to_dict(self) -> Dict[str, str]:
        """Serialize to JSON-compatible dict."""
        return {DEFECT_KEY: "1" if self.defect else "0"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DefectMessage':
        """Deserialize from dict.

        Raises:
            ValueError: If the key is missing or the value is not "0"/"1"
        """
        try:
            value = data[DEFECT_KEY]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Missing required DefectMessage field: {e}")

        if value not in ("0", "1"):
            raise ValueError(f"Invalid Defect value: {value!r} (expected '0' or '1')")

        return cls(defect=value == "1")
