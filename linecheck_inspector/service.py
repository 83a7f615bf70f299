"""
Inspector Service - lifecycle controller for the inspection pipeline.

This module provides the InspectorService class which wires the capture
source, the defect worker, the telemetry publisher and the display
together, and owns their start-up and shutdown ordering.

Threading Model:
- Main Thread: AcquisitionLoop (capture, hand-off, overlay, display)
- DefectWorkerThread: frame analysis (ours)
- TelemetryPublisherThread: periodic MQTT publication (ours, optional)
- paho-mqtt network threads (publisher and control plane internal)

Lifecycle:
    CREATED → RUNNING → STOPPING → STOPPED

    STOPPING begins when the shutdown token is stopped (end of stream,
    key press, SIGTERM). STOPPED is reached once both of our threads are
    joined and capture, display and MQTT clients are released.
"""

import logging
import signal
from enum import Enum
from typing import Optional

from linecheck_inspector.acquisition import AcquisitionLoop, compute_display_delay
from linecheck_inspector.config import InspectorConfig
from linecheck_inspector.context import PipelineContext, StopReason
from linecheck_inspector.detection import PartDetector
from linecheck_inspector.telemetry import TelemetryPublisher
from linecheck_inspector.worker import DefectWorker

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class InspectorService:
    """
    Main inspection service.

    Usage:
        config = InspectorConfig.from_yaml("config.yaml")
        service = InspectorService(
            config=config,
            capture=VideoSource(config.source),
            display=WindowDisplay(config.window_name),
            publisher=defect_publisher,
            control_plane=control_plane,
        )

        service.setup()
        service.install_signal_handler()
        service.start()
        reason = service.run()  # Blocks until stopped, then tears down
    """

    def __init__(
        self,
        config: InspectorConfig,
        capture,  # VideoSource
        display,  # WindowDisplay / HeadlessDisplay
        publisher=None,  # DefectPublisher
        control_plane=None,  # MQTTControlPlane
        detector: Optional[PartDetector] = None,
        context: Optional[PipelineContext] = None,
        telemetry_interval: Optional[float] = None,
        join_timeout: float = 5.0,
    ):
        """
        Initialize inspector service.

        Args:
            config: Inspector configuration
            capture: Capture collaborator (open, next_frame, fps, release)
            display: Display collaborator (show, wait, close)
            publisher: Telemetry publisher; None disables telemetry
            control_plane: Optional control channel
            detector: Part detector (default: PartDetector())
            context: Shared context (default: built from config.bounds)
            telemetry_interval: Override of config.publish_rate_seconds
            join_timeout: Seconds to wait for the telemetry thread on shutdown
        """
        self.config = config
        self.capture = capture
        self.display = display
        self.publisher = publisher
        self.control_plane = control_plane
        self.join_timeout = join_timeout

        self.context = context or PipelineContext(bounds=config.bounds)

        self.worker = DefectWorker(
            self.context,
            detector=detector,
            idle_seconds=config.worker_idle_seconds,
        )

        self.telemetry: Optional[TelemetryPublisher] = None
        if config.telemetry_enabled and publisher is not None:
            self.telemetry = TelemetryPublisher(
                self.context,
                publisher,
                interval_seconds=telemetry_interval or config.publish_rate_seconds,
            )

        self.acquisition: Optional[AcquisitionLoop] = None
        self._state = LifecycleState.CREATED

        logger.info(
            f"InspectorService initialized "
            f"(min_area={config.min_area}, max_area={config.max_area}, source={config.source})"
        )

    @property
    def state(self) -> LifecycleState:
        if self._state == LifecycleState.RUNNING and not self.context.token.is_running():
            return LifecycleState.STOPPING
        return self._state

    def setup(self) -> None:
        """
        Open the capture source and build the acquisition loop.

        Raises:
            CaptureError: If the source cannot be opened
        """
        self.capture.open()

        delay_ms = compute_display_delay(
            fps=getattr(self.capture, "fps", 0.0),
            is_file=self.config.is_file_source,
            default_delay_ms=self.config.default_delay_ms,
        )

        self.acquisition = AcquisitionLoop(
            self.context,
            capture=self.capture,
            display=self.display,
            resolution_wh=self.config.frame_resolution_wh,
            delay_ms=delay_ms,
        )

        logger.info(f"Min Area: {self.config.min_area}")
        logger.info(f"Max Area: {self.config.max_area}")
        logger.info(f"Display delay: {delay_ms} ms")

    def install_signal_handler(self) -> None:
        """Route SIGTERM to the shutdown token (main thread only)."""
        signal.signal(signal.SIGTERM, self._handle_sigterm)

    def _handle_sigterm(self, signum, frame) -> None:
        self.context.token.stop(StopReason.SIGNAL)

    def start(self) -> None:
        """
        Start background components (non-blocking).

        Lifecycle:
        1. Connect control plane (failure is logged, not fatal)
        2. Connect telemetry publisher (failure is logged, not fatal)
        3. Start defect worker thread
        4. Start telemetry thread (if enabled)
        """
        if self.acquisition is None:
            raise RuntimeError("Service not set up. Call setup() first.")

        if self._state != LifecycleState.CREATED:
            logger.warning(f"Service cannot start from state {self._state.value}")
            return

        logger.info("Starting inspector service")

        if self.control_plane is not None:
            if not self.control_plane.connect(timeout=5.0):
                logger.warning("⚠️ Control plane not connected, continuing without it")

        if self.telemetry is not None:
            if self.publisher.connect(timeout=5.0):
                logger.info("MQTT started.")
            else:
                logger.warning("MQTT NOT started: is the broker reachable? Check MQTT_SERVER.")
        else:
            logger.info("Telemetry disabled")

        self.worker.start()
        if self.telemetry is not None:
            self.telemetry.start()

        self._state = LifecycleState.RUNNING

        if self.control_plane is not None:
            self.control_plane.publish_status("running")

        logger.info("✅ Inspector service started")

    def run(self) -> Optional[StopReason]:
        """
        Run the acquisition loop on the calling thread, then shut down.

        Returns:
            Why the pipeline stopped
        """
        if self._state != LifecycleState.RUNNING:
            raise RuntimeError("Service not running. Call start() first.")

        try:
            reason = self.acquisition.run()
        except Exception as e:
            logger.error(f"Acquisition error: {e}", exc_info=True)
            self.context.token.stop(StopReason.ERROR)
            reason = self.context.token.reason
        finally:
            self.stop()

        return reason

    def stop(self, reason: StopReason = StopReason.USER_REQUEST) -> None:
        """
        Stop the service gracefully. Idempotent.

        Order:
        1. Stop the shutdown token (no-op if already stopped)
        2. Join the worker (no timeout: one frame of analysis is bounded)
        3. Join the telemetry thread
        4. Release capture source and close display
        5. Disconnect publisher and control plane

        A telemetry thread still alive after join_timeout keeps its
        publisher connected; the daemon thread dies with the process.
        """
        if self._state in (LifecycleState.STOPPED, LifecycleState.STOPPING):
            return

        self.context.token.stop(reason)
        was_running = self._state == LifecycleState.RUNNING
        self._state = LifecycleState.STOPPING
        logger.info(f"Stopping inspector service (reason={self.context.token.reason.value})")

        self.worker.join()

        telemetry_joined = self.telemetry is None or self.telemetry.join(self.join_timeout)
        if not telemetry_joined:
            logger.warning("Telemetry publisher did not stop within timeout, leaving its MQTT client open")

        try:
            self.capture.release()
        except Exception as e:
            logger.error(f"Error releasing capture source: {e}")

        try:
            self.display.close()
        except Exception as e:
            logger.error(f"Error closing display: {e}")

        if self.telemetry is not None and telemetry_joined:
            self.publisher.disconnect()

        if self.control_plane is not None:
            if was_running:
                self.control_plane.publish_status("stopped", {"reason": self.context.token.reason.value})
            self.control_plane.disconnect()

        self._state = LifecycleState.STOPPED

        if self.acquisition is not None:
            logger.info(
                f"Frames captured={self.acquisition.frames_captured} "
                f"analyzed={self.worker.frames_analyzed} "
                f"fps={self.acquisition.fps_monitor.fps:.1f}"
            )
        logger.info("✅ Inspector service stopped")

    @property
    def frames_captured(self) -> int:
        return self.acquisition.frames_captured if self.acquisition else 0
