"""
Configuration schema for the assembly line inspector.

This module defines the configuration structure for the inspector,
including capture source selection, area bounds for the defect rule,
display settings, and MQTT telemetry settings.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Tuple, Union
import yaml


@dataclass(frozen=True)
class AreaBounds:
    """
    Accepted part area range in square pixels (both ends inclusive).

    A part whose bounding box area falls outside [min_area, max_area] is
    classified as defective.
    """

    min_area: int = 10000
    max_area: int = 30000

    def __post_init__(self):
        """Validate area bounds."""
        if self.min_area < 0 or self.max_area < 0:
            raise ValueError(
                f"Area bounds must be >= 0, got ({self.min_area}, {self.max_area})"
            )
        if self.min_area > self.max_area:
            raise ValueError(
                f"min_area ({self.min_area}) must not exceed max_area ({self.max_area})"
            )


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    client_id: str = "linecheck"
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0  # Telemetry QoS (fire-and-forget)

    topic: str = "defects/counter"
    control_topic: str = "defects/control"
    status_topic: str = "defects/status"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not self.broker:
            raise ValueError("MQTT broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

        if not self.topic:
            raise ValueError("MQTT topic cannot be empty")

    def with_env_overrides(self, environ=None) -> "MQTTConfig":
        """
        Apply broker settings from the environment.

        Recognised variables:
            MQTT_SERVER: "host" or "host:port"
            MQTT_CLIENT_ID, MQTT_USERNAME, MQTT_PASSWORD

        Returns:
            New MQTTConfig (self if nothing is set)
        """
        environ = os.environ if environ is None else environ
        changes = {}

        server = environ.get("MQTT_SERVER")
        if server:
            host, _, port = server.rpartition(":")
            if host and port.isdigit():
                changes["broker"] = host
                changes["port"] = int(port)
            else:
                changes["broker"] = server

        for env_name, attr in (
            ("MQTT_CLIENT_ID", "client_id"),
            ("MQTT_USERNAME", "username"),
            ("MQTT_PASSWORD", "password"),
        ):
            if environ.get(env_name):
                changes[attr] = environ[env_name]

        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class InspectorConfig:
    """
    Main configuration for the inspector.

    Loaded from YAML (optional) and command-line overrides, validated at
    startup. Immutable after construction (frozen dataclass).
    """

    # Capture source: a file path wins over the device index
    device: int = 0
    input_path: Optional[str] = None

    # Defect rule
    min_area: int = 10000
    max_area: int = 30000

    # Telemetry
    publish_rate_seconds: int = 1
    telemetry_enabled: bool = True

    # Display
    display_enabled: bool = True
    window_name: str = "Assembly Line Measurements"
    frame_resolution_wh: Tuple[int, int] = (960, 540)  # (width, height)
    default_delay_ms: int = 5

    # Worker polling interval when no frame is waiting
    worker_idle_seconds: float = 0.005

    # MQTT configuration
    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)

    def __post_init__(self):
        """Validate inspector configuration."""
        if self.device < 0:
            raise ValueError(f"device must be >= 0, got {self.device}")

        # AreaBounds validates the pair
        AreaBounds(min_area=self.min_area, max_area=self.max_area)

        if isinstance(self.publish_rate_seconds, bool) or not isinstance(self.publish_rate_seconds, int):
            raise ValueError(
                f"publish_rate_seconds must be an integer, got {self.publish_rate_seconds!r}"
            )
        if self.publish_rate_seconds < 1:
            raise ValueError(
                f"publish_rate_seconds must be >= 1, got {self.publish_rate_seconds}"
            )

        width, height = self.frame_resolution_wh
        if width <= 0 or height <= 0:
            raise ValueError(
                f"frame_resolution_wh must have positive dimensions, got {self.frame_resolution_wh}"
            )

        if self.default_delay_ms < 1:
            raise ValueError(
                f"default_delay_ms must be >= 1, got {self.default_delay_ms}"
            )

        if self.worker_idle_seconds <= 0:
            raise ValueError(
                f"worker_idle_seconds must be > 0, got {self.worker_idle_seconds}"
            )

    @property
    def bounds(self) -> AreaBounds:
        return AreaBounds(min_area=self.min_area, max_area=self.max_area)

    @property
    def source(self) -> Union[int, str]:
        """Value to hand to the capture backend (file path or device index)."""
        return self.input_path if self.input_path else self.device

    @property
    def is_file_source(self) -> bool:
        return bool(self.input_path)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "InspectorConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            device: 0
            input_path: null          # e.g. "./data/videos/line.mp4"
            min_area: 10000
            max_area: 30000
            publish_rate_seconds: 1
            frame_resolution_wh: [960, 540]

            mqtt_config:
              broker: "localhost"
              port: 1883
              topic: "defects/counter"
              control_topic: "defects/control"
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        mqtt_config = MQTTConfig(**data.pop("mqtt_config", None) or {})

        if "frame_resolution_wh" in data:
            data["frame_resolution_wh"] = tuple(data["frame_resolution_wh"])

        return cls(mqtt_config=mqtt_config, **data)

    def with_overrides(self, **overrides) -> "InspectorConfig":
        """Return a copy with the given non-None fields replaced."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self
