"""
Defect Publisher
================

Bounded Context: Defect Telemetry Production

Publishes the current defect verdict to the telemetry topic.

Message Flow:
    TelemetryPublisher loop → DefectMessage → DefectPublisher → MQTT Broker

Example:
    >>> from linecheck_mqtt.publishers import DefectPublisher
    >>> from linecheck_mqtt.schemas import DefectMessage
    >>> from linecheck_mqtt.logging import create_logger
    >>>
    >>> publisher = DefectPublisher(
    ...     broker_host="localhost",
    ...     topic="defects/counter",
    ...     logger=create_logger("telemetry")
    ... )
    >>> publisher.connect()
    >>> publisher.publish_defect(DefectMessage(defect=False))
"""

from typing import Dict, Optional
from .base import BasePublisher
from ..schemas import DefectMessage
from ..logging import StructuredLogger, LogEvent


class DefectPublisher(BasePublisher):
    """
    Publisher for defect verdict messages.

    Example:
        >>> publisher = DefectPublisher(
        ...     broker_host="localhost",
        ...     broker_port=1883,
        ...     topic="defects/counter",
        ...     client_id="linecheck_telemetry",
        ...     logger=logger
        ... )
    """

    def __init__(
        self,
        broker_host: str,
        topic: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: str = "linecheck_defect_publisher",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=topic,
            client_id=client_id,
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )

    def format_message(self, defect_msg: DefectMessage) -> Dict[str, str]:
        """
        Format DefectMessage to its wire dict.

        Raises:
            ValueError: If defect_msg cannot be serialized
        """
        try:
            formatted = defect_msg.to_dict()
        except Exception as e:
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Failed to serialize defect message",
                exc_info=e
            )
            raise ValueError(f"Failed to format defect message: {e}")

        self.logger.debug(
            event=LogEvent.DEFECT_SERIALIZED,
            message="Serialized defect message",
            metadata=formatted
        )
        return formatted

    def publish_defect(self, defect_msg: DefectMessage) -> bool:
        """
        Publish a defect message to the telemetry topic.

        Returns:
            True if published, False otherwise (never raises)
        """
        try:
            message_data = self.format_message(defect_msg)
            success = self.publish(message_data)

            if success:
                self.logger.debug(
                    event=LogEvent.DEFECT_PUBLISHED,
                    message="Published defect verdict",
                    metadata={'topic': self.topic, 'defect': defect_msg.defect}
                )

            return success

        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing defect message",
                exc_info=e,
                metadata={'topic': self.topic}
            )
            return False
