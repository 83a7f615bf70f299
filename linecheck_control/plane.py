"""
MQTTControlPlane - MQTT control channel for the inspector

Bounded Context: control topic reception + lifecycle status
Responsibilities:
  - MQTT connection lifecycle (connect, disconnect)
  - Control message reception (subscribe to control topic)
  - Status publishing (publish to status topic)

Control messages are logged and counted; they do not change the
inspector's behaviour.

QoS Policy:
  - Control: QoS 1 (at-least-once delivery)
  - Status: QoS 1 + retained (last status persisted)

Threading:
  - MQTT client runs own background thread (loop_start/loop_stop)
  - Callbacks (_on_connect, _on_message) run in MQTT thread
"""

import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from linecheck_mqtt.logging import LogEvent, create_logger

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving control messages and publishing status.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            control_topic="defects/control",
            status_topic="defects/status",
            client_id="linecheck_control"
        )

        if control_plane.connect(timeout=5.0):
            print("Connected to MQTT broker")

        # Later: disconnect
        control_plane.disconnect()
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        control_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.control_topic = control_topic
        self.status_topic = status_topic
        self.client_id = client_id

        # MQTT client
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        # Authentication
        if username and password:
            self.client.username_pw_set(username, password)

        # Connection synchronization
        self._connected = threading.Event()
        self._running = False

        # Inbound traffic
        self.events = create_logger("control")
        self.messages_received = 0
        self.last_message: Optional[Dict[str, Any]] = None
        self._stats_lock = threading.Lock()

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        The network loop keeps retrying in the background when the first
        attempt times out.

        Returns:
            True if connected within timeout, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting control plane to MQTT broker: {self.broker_host}:{self.broker_port}")
            self.client.connect_async(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            self._running = True
        except Exception as e:
            logger.error(f"❌ Error connecting to MQTT: {e}")
            return False

        if self._connected.wait(timeout=timeout):
            logger.info("✅ MQTT Control Plane connected")
            return True

        logger.warning(f"⚠️ Control plane connection timeout after {timeout}s, retrying in background")
        return False

    def disconnect(self) -> None:
        """
        Disconnect from MQTT broker.

        Thread Safety: Safe to call multiple times
        """
        if self._running:
            logger.info("🔌 Disconnecting control plane from MQTT broker")
            self.client.disconnect()
            self.client.loop_stop()
            self._running = False
            self._connected.clear()
            logger.info("✅ MQTT Control Plane disconnected")

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Publish status update to status topic.

        Args:
            status: Status string (e.g., "running", "stopped")
            details: Optional extra fields

        QoS: 1 (at-least-once), retained
        """
        if not self._connected.is_set():
            logger.debug(f"Status '{status}' not published: control plane offline")
            return False

        message = {
            "status": status,
            "timestamp": datetime.now().isoformat(),
            "client_id": self.client_id,
        }
        if details:
            message.update(details)

        try:
            self.client.publish(
                self.status_topic,
                json.dumps(message, default=str),
                qos=1,
                retain=True,
            )
            logger.debug(f"📤 Status published: {status}")
            return True
        except Exception as e:
            logger.error(f"❌ Error publishing status: {e}")
            return False

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"❌ Control plane connection failed ({reason_code})")
            self._connected.clear()
            return

        logger.info(f"✅ Control plane connected to broker ({reason_code})")
        client.subscribe(self.control_topic, qos=1)
        logger.info(f"📥 Subscribed to: {self.control_topic} (QoS 1)")
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning(f"⚠️ Unexpected control plane disconnection ({reason_code})")
        else:
            logger.info("✅ Control plane disconnected from broker")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        """
        MQTT callback: control message received.

        Payloads are logged as JSON when they parse, raw text otherwise.
        """
        try:
            payload = msg.payload.decode('utf-8', errors='replace')
            try:
                body: Any = json.loads(payload)
            except json.JSONDecodeError:
                body = payload

            with self._stats_lock:
                self.messages_received += 1
                self.last_message = {"topic": msg.topic, "payload": body}

            self.events.info(
                event=LogEvent.CONTROL_MESSAGE_RECEIVED,
                message=f"MQTT message received: {msg.topic}",
                metadata={"topic": msg.topic, "payload": body}
            )
        except Exception as e:
            logger.error(f"❌ Error processing control message: {e}", exc_info=True)
