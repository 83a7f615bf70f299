"""
Defect Worker - background frame analysis thread.

Pulls the latest frame from the FrameSlot, measures the part with
PartDetector, applies the area rule and stores the verdict in
VerdictState.

Threading Model:
- Runs in its own thread ("DefectWorkerThread")
- Loop gated by the context's ShutdownToken
- Idles on the token (short timeout) when the slot is empty
"""

import logging
import threading
import time
from typing import Optional

from linecheck_inspector.context import (
    CapturedFrame,
    ClassificationVerdict,
    PipelineContext,
)
from linecheck_inspector.detection import PartDetector, classify_part_area

logger = logging.getLogger(__name__)


class DefectWorker:
    """
    Frame analysis loop.

    Only the frame taken from the slot is analyzed. Frames dropped by the
    slot while this worker is busy are never seen, so every analyzed frame
    is newer than the previous one but not every captured frame is
    analyzed.

    A failure on one frame is logged and the frame skipped; the thread
    keeps running.

    Usage:
        worker = DefectWorker(context)
        worker.start()
        ...
        context.token.stop(StopReason.USER_REQUEST)
        worker.join()
    """

    def __init__(
        self,
        context: PipelineContext,
        detector: Optional[PartDetector] = None,
        idle_seconds: float = 0.005,
    ):
        self.context = context
        self.detector = detector or PartDetector()
        self.idle_seconds = idle_seconds

        self.frames_analyzed = 0
        self.frames_failed = 0
        self.last_frame_id: Optional[int] = None
        self.last_frame_age: Optional[float] = None  # seconds from capture to analysis

        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("Defect worker already started")
            return

        self._thread = threading.Thread(
            target=self.run,
            name="DefectWorkerThread",
            daemon=True
        )
        self._thread.start()
        logger.info("Defect worker thread started")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the thread to exit.

        Returns:
            True if the thread is no longer alive
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        token = self.context.token
        while token.is_running():
            frame = self.context.slot.take()
            if frame is None:
                token.wait(self.idle_seconds)
                continue

            try:
                self.process(frame)
            except Exception as e:
                self.frames_failed += 1
                logger.error(f"Error analyzing frame {frame.frame_id}: {e}", exc_info=True)

        logger.info(
            f"Video processing thread stopped "
            f"(analyzed={self.frames_analyzed}, failed={self.frames_failed})"
        )

    def process(self, frame: CapturedFrame) -> ClassificationVerdict:
        """Analyze one frame and publish its verdict to the shared state."""
        measurement = self.detector.measure(frame.image)
        verdict = ClassificationVerdict(
            defect=classify_part_area(measurement.part_area, self.context.bounds)
        )

        self.context.verdicts.write(verdict, boxes=measurement.boxes, frame_id=frame.frame_id)

        self.frames_analyzed += 1
        self.last_frame_id = frame.frame_id
        self.last_frame_age = time.monotonic() - frame.timestamp
        logger.debug(
            f"Frame {frame.frame_id}: part_area={measurement.part_area} defect={verdict.defect} "
            f"age={self.last_frame_age * 1000:.1f}ms"
        )
        return verdict
