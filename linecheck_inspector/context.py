"""
Pipeline context - shared state for the inspection threads.

This module provides the objects that the acquisition loop, the defect
worker and the telemetry publisher share. They are bundled in a
PipelineContext and injected into each loop's constructor.

Components:
- FrameSlot: single-slot, drop-when-full hand-off of captured frames
- VerdictState: latest defect verdict (plus the part boxes it came from)
- ShutdownToken: set-once cancellation token (the running flag)

Thread Safety:
- FrameSlot and VerdictState each guard their data with one lock
- No method ever holds two locks at once
- ShutdownToken is backed by threading.Event
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from linecheck_inspector.config import AreaBounds


@dataclass(frozen=True)
class CapturedFrame:
    """
    A frame handed from acquisition to the worker.

    The image is a private copy owned by whoever holds the record;
    the acquisition loop keeps drawing on its own buffer.
    """
    frame_id: int
    image: np.ndarray
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class ClassificationVerdict:
    """Defect verdict for the most recently analyzed frame."""
    defect: bool = False

    @property
    def label(self) -> str:
        """Overlay text, e.g. 'Defect: 1'."""
        return f"Defect: {int(self.defect)}"


# (x, y, width, height) in display pixels
PartBox = Tuple[int, int, int, int]


@dataclass(frozen=True)
class InspectionSnapshot:
    """Verdict together with the part boxes found on the same frame."""
    verdict: ClassificationVerdict
    boxes: Tuple[PartBox, ...] = ()
    frame_id: Optional[int] = None


class FrameSlot:
    """
    Single-slot frame buffer with drop-when-full semantics.

    offer() never blocks and never replaces a held frame: if the slot is
    occupied the new frame is discarded. take() never blocks either and
    returns None when the slot is empty. Drops are silent.
    """

    def __init__(self):
        self._frame: Optional[CapturedFrame] = None
        self._lock = threading.Lock()

    def offer(self, frame: CapturedFrame) -> bool:
        """
        Insert frame if the slot is empty.

        Returns:
            True if the frame was stored, False if it was discarded
        """
        with self._lock:
            if self._frame is not None:
                return False
            self._frame = frame
            return True

    def take(self) -> Optional[CapturedFrame]:
        """Remove and return the held frame, or None."""
        with self._lock:
            frame = self._frame
            self._frame = None
            return frame

    def __len__(self) -> int:
        with self._lock:
            return 0 if self._frame is None else 1


class VerdictState:
    """
    Latest classification verdict, guarded by a mutex.

    Verdicts are immutable, so read() can hand out the stored instance.
    """

    def __init__(self):
        self._snapshot = InspectionSnapshot(verdict=ClassificationVerdict())
        self._lock = threading.Lock()

    def read(self) -> ClassificationVerdict:
        with self._lock:
            return self._snapshot.verdict

    def write(
        self,
        verdict: ClassificationVerdict,
        boxes: Tuple[PartBox, ...] = (),
        frame_id: Optional[int] = None,
    ) -> None:
        snapshot = InspectionSnapshot(verdict=verdict, boxes=tuple(boxes), frame_id=frame_id)
        with self._lock:
            self._snapshot = snapshot

    def reset(self) -> None:
        with self._lock:
            self._snapshot = InspectionSnapshot(verdict=ClassificationVerdict())

    def snapshot(self) -> InspectionSnapshot:
        """Verdict and part boxes as one consistent record."""
        with self._lock:
            return self._snapshot


class StopReason(str, Enum):
    """Why the pipeline stopped (first one wins)."""

    END_OF_STREAM = "end_of_stream"
    USER_REQUEST = "user_request"
    SIGNAL = "signal"
    ERROR = "error"


class ShutdownToken:
    """
    Set-once cancellation token shared by every loop.

    is_running() starts True and turns False exactly once. Only the first
    stop() records its reason; later calls are no-ops, so it is safe to
    call from a signal handler during teardown.
    """

    def __init__(self):
        self._stopped = threading.Event()
        self._reason: Optional[StopReason] = None
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return not self._stopped.is_set()

    def stop(self, reason: StopReason) -> bool:
        """
        Request shutdown.

        Returns:
            True if this call performed the transition, False if the
            token was already stopped
        """
        with self._lock:
            if self._stopped.is_set():
                return False
            self._reason = reason
            self._stopped.set()
            return True

    @property
    def reason(self) -> Optional[StopReason]:
        return self._reason

    def wait(self, timeout: float) -> bool:
        """
        Sleep up to timeout seconds, waking early on shutdown.

        Returns:
            True if shutdown was requested
        """
        return self._stopped.wait(timeout)


@dataclass
class PipelineContext:
    """Everything the inspection loops share, passed by reference."""
    bounds: AreaBounds
    slot: FrameSlot = field(default_factory=FrameSlot)
    verdicts: VerdictState = field(default_factory=VerdictState)
    token: ShutdownToken = field(default_factory=ShutdownToken)
