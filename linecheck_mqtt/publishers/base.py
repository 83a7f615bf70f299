"""
MQTT publisher base for the inspector's telemetry topic.

The paho network loop runs in its own thread and reconnects with a 1 to
30 s backoff. Until the broker answers, publish() refuses and counts the
attempt as failed; telemetry ticks are never queued for later.

Subclasses turn their domain message into a dict (format_message());
this class owns the connection, the JSON encoding and the counters.
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import paho.mqtt.client as mqtt

from ..logging import StructuredLogger, LogEvent


class BasePublisher(ABC):
    """
    Connection and publish bookkeeping shared by telemetry publishers.

    Args:
        broker_host, broker_port: Broker address
        topic: Topic every publish() goes to
        client_id: MQTT client identifier
        logger: StructuredLogger for connection and publish events
        username, password: Credentials (used only when both are set)
        qos: Publish QoS, 0 by default
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id
        )
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)

        # Callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connected = threading.Event()
        self._loop_running = False
        self._message_count = 0
        self._failed_count = 0
        self._stats_lock = threading.Lock()

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Broker refused connection ({reason_code})",
                metadata={'broker': self.broker}
            )
            return

        self._connected.set()
        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to MQTT broker",
            metadata={
                'broker': self.broker,
                'client_id': self.client_id,
                'topic': self.topic
            }
        )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from MQTT broker",
            metadata={
                'broker': self.broker,
                'reason_code': str(reason_code)
            }
        )

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Start the network loop and wait up to `timeout` for the CONNACK.

        False only means "not yet": the loop keeps retrying.
        """
        try:
            self.client.connect_async(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            self._loop_running = True
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to start MQTT client",
                exc_info=e,
                metadata={'broker': self.broker}
            )
            return False

        if self._connected.wait(timeout=timeout):
            return True

        self.logger.warning(
            event=LogEvent.MQTT_RECONNECTING,
            message="Broker not reachable yet, retrying in background",
            metadata={'broker': self.broker, 'timeout': timeout}
        )
        return False

    def disconnect(self) -> None:
        """Stop the network loop. No-op if connect() never started it."""
        if not self._loop_running:
            return

        try:
            self.client.disconnect()
            self.client.loop_stop()
            self._loop_running = False
            self._connected.clear()
            self.logger.info(
                event=LogEvent.MQTT_DISCONNECTED,
                message="Disconnected from broker",
                metadata={'message_count': self._message_count}
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Error during disconnect",
                exc_info=e
            )

    def is_connected(self) -> bool:
        return self._connected.is_set()

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """Domain message -> JSON-serializable dict."""
        raise NotImplementedError("Subclasses must implement format_message()")

    def publish(
        self,
        message_data: Dict[str, Any],
        retain: bool = False
    ) -> bool:
        """
        JSON-encode message_data and hand it to paho for self.topic.

        True means the client accepted it; delivery is not awaited.
        """
        if not self._connected.is_set():
            self._record_failure()
            self.logger.warning(
                event=LogEvent.MQTT_PUBLISH_FAILED,
                message="Cannot publish: not connected to broker",
                metadata={'topic': self.topic}
            )
            return False

        try:
            json_message = json.dumps(message_data)

            result = self.client.publish(
                topic=self.topic,
                payload=json_message,
                qos=self.qos,
                retain=retain
            )

            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                with self._stats_lock:
                    self._message_count += 1
                    message_count = self._message_count

                self.logger.info(
                    event=LogEvent.MQTT_PUBLISH_SUCCESS,
                    message=f"MQTT message published to topic: {self.topic}",
                    metadata={
                        'topic': self.topic,
                        'payload': json_message,
                        'message_count': message_count,
                        'qos': self.qos
                    }
                )
                return True
            else:
                self._record_failure()
                self.logger.warning(
                    event=LogEvent.MQTT_PUBLISH_FAILED,
                    message=f"Publish failed (rc={result.rc})",
                    metadata={'topic': self.topic}
                )
                return False

        except Exception as e:
            self._record_failure()
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing message",
                exc_info=e,
                metadata={'topic': self.topic}
            )
            return False

    def _record_failure(self) -> None:
        with self._stats_lock:
            self._failed_count += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return {
                'message_count': self._message_count,
                'failed_count': self._failed_count,
                'connected': self._connected.is_set(),
                'topic': self.topic,
                'broker': self.broker
            }
