"""
Tests for part measurement, the defect rule and the worker loop.

Frames are synthetic: white rectangles on a black 960x540 background.
"""

import time

import numpy as np
import pytest

from linecheck_inspector.config import AreaBounds
from linecheck_inspector.context import CapturedFrame, PipelineContext, StopReason
from linecheck_inspector.detection import PartDetector, classify_part_area
from linecheck_inspector.worker import DefectWorker

BOUNDS = AreaBounds(min_area=10000, max_area=30000)


def make_frame(width: int = 0, height: int = 0, x: int = 200, y: int = 150) -> np.ndarray:
    frame = np.zeros((540, 960, 3), dtype=np.uint8)
    if width and height:
        frame[y:y + height, x:x + width] = 255
    return frame


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.mark.parametrize(
    "part_area, expected",
    [
        (0, False),
        (15000, False),
        (9999, True),
        (10000, False),
        (30000, False),
        (30001, True),
        (1, True),
    ],
)
def test_classify_part_area(part_area, expected):
    assert classify_part_area(part_area, BOUNDS) is expected


def test_empty_scene_measures_zero():
    measurement = PartDetector().measure(make_frame())
    assert measurement.part_area == 0
    assert measurement.boxes == ()
    assert not measurement.part_present


def test_in_range_part():
    """A 200x100 bright block measures close to 20000 (edges soften under the blur)."""
    measurement = PartDetector().measure(make_frame(200, 100))

    assert 18000 <= measurement.part_area <= 20000
    assert len(measurement.boxes) == 1
    assert classify_part_area(measurement.part_area, BOUNDS) is False


def test_undersized_part():
    measurement = PartDetector().measure(make_frame(100, 50))

    assert 0 < measurement.part_area < 10000
    assert classify_part_area(measurement.part_area, BOUNDS) is True


def test_oversized_part():
    measurement = PartDetector().measure(make_frame(300, 200))

    assert measurement.part_area > 30000
    assert classify_part_area(measurement.part_area, BOUNDS) is True


def test_largest_part_wins():
    frame = make_frame(200, 100)
    frame[400:430, 600:630] = 255  # small second blob

    measurement = PartDetector().measure(frame)

    assert len(measurement.boxes) == 2
    assert measurement.part_area == max(w * h for _, _, w, h in measurement.boxes)
    assert measurement.part_area > 18000


def test_dim_part_is_ignored():
    """Below the 200 cutoff nothing counts as foreground."""
    frame = make_frame()
    frame[100:200, 100:300] = 150
    assert PartDetector().measure(frame).part_area == 0


def test_grayscale_input_accepted():
    gray = make_frame(200, 100)[:, :, 0]
    assert PartDetector().measure(gray).part_area > 18000


def test_worker_process_writes_verdict():
    context = PipelineContext(bounds=BOUNDS)
    worker = DefectWorker(context)

    verdict = worker.process(CapturedFrame(frame_id=3, image=make_frame(100, 50)))

    assert verdict.defect is True
    snapshot = context.verdicts.snapshot()
    assert snapshot.verdict.defect is True
    assert snapshot.frame_id == 3
    assert len(snapshot.boxes) == 1
    assert worker.frames_analyzed == 1
    assert worker.last_frame_id == 3


def test_worker_records_frame_age():
    context = PipelineContext(bounds=BOUNDS)
    worker = DefectWorker(context)
    assert worker.last_frame_age is None

    stale = CapturedFrame(frame_id=1, image=make_frame(200, 100), timestamp=time.monotonic() - 0.5)
    worker.process(stale)

    assert worker.last_frame_age >= 0.5


class FlakyDetector(PartDetector):
    """Raises on the first frame, then behaves."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def measure(self, image):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("corrupt frame")
        return super().measure(image)


def test_worker_survives_frame_errors():
    context = PipelineContext(bounds=BOUNDS)
    worker = DefectWorker(context, detector=FlakyDetector(), idle_seconds=0.001)
    worker.start()
    try:
        context.slot.offer(CapturedFrame(frame_id=1, image=make_frame(100, 50)))
        assert wait_until(lambda: worker.frames_failed == 1)

        context.slot.offer(CapturedFrame(frame_id=2, image=make_frame(100, 50)))
        assert wait_until(lambda: worker.frames_analyzed == 1)

        assert worker.is_alive()
        assert worker.last_frame_id == 2
        assert context.verdicts.read().defect is True
    finally:
        context.token.stop(StopReason.USER_REQUEST)
        assert worker.join(2.0)


def test_worker_idles_without_spinning_and_stops_promptly():
    context = PipelineContext(bounds=BOUNDS)
    worker = DefectWorker(context, idle_seconds=0.05)
    worker.start()

    time.sleep(0.1)
    start = time.monotonic()
    context.token.stop(StopReason.END_OF_STREAM)

    assert worker.join(1.0)
    assert time.monotonic() - start < 0.5
    assert worker.frames_analyzed == 0


def test_worker_start_twice_keeps_one_thread():
    context = PipelineContext(bounds=BOUNDS)
    worker = DefectWorker(context, idle_seconds=0.001)
    worker.start()
    first = worker._thread
    worker.start()
    assert worker._thread is first
    context.token.stop(StopReason.USER_REQUEST)
    assert worker.join(1.0)
