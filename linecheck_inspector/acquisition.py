"""
Frame Acquisition - capture, hand-off and display on the control thread.

Components:
- VideoSource: OpenCV capture wrapper (camera index or video file)
- WindowDisplay: OpenCV HighGUI window; any key press requests a stop
- HeadlessDisplay: no window, just paces the loop
- AcquisitionLoop: read → resize → offer → overlay → show → wait

The acquisition loop runs on the main thread (HighGUI must).
"""

import logging
import time
from typing import Optional, Tuple, Union

import cv2
import numpy as np
import supervision as sv

from linecheck_inspector.context import (
    CapturedFrame,
    PipelineContext,
    ShutdownToken,
    StopReason,
)
from linecheck_inspector.rendering import OverlayRenderer

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """Raised when the video source cannot be opened."""


def compute_display_delay(fps: float, is_file: bool, default_delay_ms: int) -> int:
    """
    Milliseconds to wait per frame.

    Video files are paced at their native frame rate; cameras already
    pace themselves, so they get the short default delay.
    """
    if is_file and fps and fps > 0:
        return max(1, int(1000 / fps))
    return default_delay_ms


class VideoSource:
    """
    OpenCV capture source.

    Args:
        source: Camera device index or path to a video file
    """

    def __init__(self, source: Union[int, str]):
        self.source = source
        self._capture: Optional[cv2.VideoCapture] = None

    def open(self) -> None:
        """
        Open the capture device/file.

        Raises:
            CaptureError: If OpenCV cannot open the source
        """
        capture = cv2.VideoCapture(self.source)
        if not capture.isOpened():
            capture.release()
            raise CaptureError(f"Unable to open video source: {self.source}")
        self._capture = capture
        logger.info(f"Opened video source: {self.source} (fps={self.fps:.2f})")

    @property
    def fps(self) -> float:
        if self._capture is None:
            return 0.0
        return float(self._capture.get(cv2.CAP_PROP_FPS) or 0.0)

    def next_frame(self) -> Optional[np.ndarray]:
        """Next BGR frame, or None at end of stream / device error."""
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None or frame.size == 0:
            return None
        return frame

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Released video source: {self.source}")


class WindowDisplay:
    """OpenCV window; a key press during wait() requests a stop."""

    def __init__(self, window_name: str = "Assembly Line Measurements"):
        self.window_name = window_name
        self._opened = False

    def show(self, frame: np.ndarray) -> None:
        cv2.imshow(self.window_name, frame)
        self._opened = True

    def wait(self, delay_ms: int) -> bool:
        return cv2.waitKey(delay_ms) >= 0

    def close(self) -> None:
        if self._opened:
            cv2.destroyWindow(self.window_name)
            self._opened = False


class HeadlessDisplay:
    """
    Display stand-in for servers without a screen.

    Keeps the last rendered frame and paces the loop by waiting on the
    shutdown token, so a signal wakes it immediately. A user stop can
    never be requested.
    """

    def __init__(self, token: Optional[ShutdownToken] = None):
        self.token = token
        self.frames_shown = 0
        self.last_frame: Optional[np.ndarray] = None

    def show(self, frame: np.ndarray) -> None:
        self.frames_shown += 1
        self.last_frame = frame

    def wait(self, delay_ms: int) -> bool:
        if self.token is not None:
            self.token.wait(delay_ms / 1000.0)
        else:
            time.sleep(delay_ms / 1000.0)
        return False

    def close(self) -> None:
        self.last_frame = None


class AcquisitionLoop:
    """
    Main-thread capture loop.

    Each iteration reads a frame, resizes it to the display resolution,
    offers a private copy to the FrameSlot, draws the current verdict on
    the display copy, shows it and waits up to delay_ms for a user stop.

    Args:
        context: Shared pipeline context
        capture: Object with next_frame() -> ndarray | None
        display: Object with show(frame), wait(delay_ms) -> bool
        renderer: Overlay renderer (default: OverlayRenderer())
        resolution_wh: Display resolution (width, height)
        delay_ms: Per-frame wait, also the shutdown polling tick
    """

    def __init__(
        self,
        context: PipelineContext,
        capture,
        display,
        renderer: Optional[OverlayRenderer] = None,
        resolution_wh: Tuple[int, int] = (960, 540),
        delay_ms: int = 5,
    ):
        self.context = context
        self.capture = capture
        self.display = display
        self.renderer = renderer or OverlayRenderer()
        self.resolution_wh = tuple(resolution_wh)
        self.delay_ms = delay_ms

        self.frames_captured = 0
        self.frames_dropped = 0
        self.fps_monitor = sv.FPSMonitor()

    def run(self) -> Optional[StopReason]:
        """
        Loop until the stream ends, the user stops or the token is stopped.

        Returns:
            The reason recorded on the shutdown token
        """
        token = self.context.token

        while token.is_running():
            image = self.capture.next_frame()
            if image is None:
                if self.frames_captured == 0:
                    logger.error("ERROR! blank frame grabbed")
                else:
                    logger.info(f"End of stream after {self.frames_captured} frames")
                token.stop(StopReason.END_OF_STREAM)
                break

            self.step(image)

            if self.display.wait(self.delay_ms):
                logger.info("Stop requested from display, attempting to stop background threads")
                token.stop(StopReason.USER_REQUEST)
                break

        if token.reason == StopReason.SIGNAL:
            logger.info("Termination signal received, attempting to stop background threads")

        return token.reason

    def step(self, image: np.ndarray) -> np.ndarray:
        """Hand one raw frame to the worker and show it with the overlay."""
        if image.shape[1::-1] != self.resolution_wh:
            image = cv2.resize(image, self.resolution_wh)

        self.frames_captured += 1
        captured = CapturedFrame(frame_id=self.frames_captured, image=image.copy())
        if not self.context.slot.offer(captured):
            self.frames_dropped += 1

        snapshot = self.context.verdicts.snapshot()
        image = self.renderer.draw_part_boxes(image, snapshot.boxes)
        image = self.renderer.draw_verdict(image, snapshot.verdict)

        self.display.show(image)
        self.fps_monitor.tick()
        return image
