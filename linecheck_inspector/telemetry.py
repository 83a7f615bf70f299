"""
Telemetry Publisher - periodic defect verdict publication.

Every publish interval the current verdict is read from VerdictState and
handed to a DefectPublisher. Nothing is queued: a tick that fails to
publish is simply superseded by the next tick.

Thread: "TelemetryPublisherThread" (ours); paho-mqtt runs its own
network thread underneath the publisher.
"""

import logging
import threading
from typing import Optional

from linecheck_inspector.context import PipelineContext
from linecheck_mqtt import DefectMessage

logger = logging.getLogger(__name__)


class TelemetryPublisher:
    """
    Periodic publisher loop.

    Args:
        context: Shared pipeline context
        publisher: Object with publish_defect(DefectMessage) -> bool
            (normally linecheck_mqtt.DefectPublisher)
        interval_seconds: Pause between publications
    """

    def __init__(self, context: PipelineContext, publisher, interval_seconds: float = 1.0):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self.context = context
        self.publisher = publisher
        self.interval_seconds = interval_seconds

        self.published_count = 0
        self.failed_count = 0

        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("Telemetry publisher already started")
            return

        self._thread = threading.Thread(
            target=self.run,
            name="TelemetryPublisherThread",
            daemon=True
        )
        self._thread.start()
        logger.info(f"Telemetry publisher thread started (every {self.interval_seconds}s)")

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        token = self.context.token
        while token.is_running():
            self.publish_once()
            token.wait(self.interval_seconds)

        logger.info(
            f"MQTT sender thread stopped "
            f"(published={self.published_count}, failed={self.failed_count})"
        )

    def publish_once(self) -> bool:
        """Read the current verdict and publish it."""
        verdict = self.context.verdicts.read()
        try:
            success = self.publisher.publish_defect(DefectMessage(defect=verdict.defect))
        except Exception as e:
            success = False
            logger.error(f"Error publishing defect verdict: {e}", exc_info=True)

        if success:
            self.published_count += 1
        else:
            self.failed_count += 1
        return success
