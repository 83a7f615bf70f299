"""
Log event names for the inspector's MQTT traffic.

Every StructuredLogger line carries one of these in its "event" field,
so a day of telemetry can be filtered with e.g. `jq 'select(.event ==
"mqtt.publish.failed")'`.
"""

from enum import Enum


class LogEvent(str, Enum):
    """Event names, grouped by prefix: mqtt.*, defect.*, control.*, error.*"""

    # Broker connection and publishing
    MQTT_CONNECTED = "mqtt.connected"
    MQTT_DISCONNECTED = "mqtt.disconnected"
    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"
    MQTT_RECONNECTING = "mqtt.reconnecting"

    # Defect telemetry
    DEFECT_SERIALIZED = "defect.serialized"
    DEFECT_PUBLISHED = "defect.published"

    # Control topic
    CONTROL_MESSAGE_RECEIVED = "control.message.received"

    # Failures
    SERIALIZATION_ERROR = "error.serialization"
    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
