"""
Tests for the shared pipeline primitives (no camera, no broker).

Tests:
1. FrameSlot holds at most one frame and drops when full
2. take() right after a successful offer() returns that frame
3. VerdictState reads never observe a torn verdict/boxes pair
4. reset() is idempotent
5. ShutdownToken transitions once and keeps the first reason
"""

import threading

import numpy as np

from linecheck_inspector.config import AreaBounds
from linecheck_inspector.context import (
    CapturedFrame,
    ClassificationVerdict,
    FrameSlot,
    PipelineContext,
    ShutdownToken,
    StopReason,
    VerdictState,
)


def _frame(frame_id: int) -> CapturedFrame:
    return CapturedFrame(frame_id=frame_id, image=np.zeros((4, 4, 3), dtype=np.uint8))


def test_slot_drops_when_full():
    """Only the first of several offers is kept."""
    slot = FrameSlot()

    assert slot.offer(_frame(1)) is True
    assert slot.offer(_frame(2)) is False
    assert slot.offer(_frame(3)) is False
    assert len(slot) == 1

    taken = slot.take()
    assert taken.frame_id == 1
    assert len(slot) == 0
    assert slot.take() is None


def test_take_returns_offered_frame():
    slot = FrameSlot()
    for frame_id in range(5):
        frame = _frame(frame_id)
        assert slot.offer(frame)
        assert slot.take() is frame


def test_slot_never_holds_more_than_one_under_contention():
    """Concurrent producers and a consumer never see more than one held frame."""
    slot = FrameSlot()
    sizes = []
    taken_ids = []

    def producer(offset):
        for i in range(2000):
            slot.offer(_frame(offset + i))
            sizes.append(len(slot))

    def consumer():
        for _ in range(4000):
            frame = slot.take()
            if frame is not None:
                taken_ids.append(frame.frame_id)

    threads = [threading.Thread(target=producer, args=(k * 10000,)) for k in range(3)]
    threads.append(threading.Thread(target=consumer))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(sizes) <= 1
    assert len(taken_ids) == len(set(taken_ids))


def test_verdict_state_initially_not_defective():
    state = VerdictState()
    assert state.read() == ClassificationVerdict(defect=False)
    assert state.snapshot().boxes == ()


def test_concurrent_reads_see_whole_writes():
    """
    Writers store defect=True with one box and defect=False with none;
    every snapshot must pair them consistently.
    """
    state = VerdictState()
    stop = threading.Event()
    bad_reads = []

    def writer(defect):
        boxes = ((1, 2, 3, 4),) if defect else ()
        while not stop.is_set():
            state.write(ClassificationVerdict(defect=defect), boxes=boxes)

    def reader():
        for _ in range(20000):
            snap = state.snapshot()
            if snap.verdict.defect != bool(snap.boxes):
                bad_reads.append(snap)
            assert state.read().defect in (True, False)

    writers = [threading.Thread(target=writer, args=(flag,)) for flag in (True, False)]
    readers = [threading.Thread(target=reader) for _ in range(2)]
    for t in writers + readers:
        t.start()
    for t in readers:
        t.join()
    stop.set()
    for t in writers:
        t.join()

    assert bad_reads == []


def test_reset_twice_is_harmless():
    state = VerdictState()
    state.write(ClassificationVerdict(defect=True), boxes=((0, 0, 10, 10),), frame_id=7)
    assert state.read().defect is True

    state.reset()
    assert state.read().defect is False
    state.reset()
    assert state.read().defect is False
    assert state.snapshot().frame_id is None


def test_verdict_label():
    assert ClassificationVerdict(defect=False).label == "Defect: 0"
    assert ClassificationVerdict(defect=True).label == "Defect: 1"


def test_token_first_reason_wins():
    token = ShutdownToken()
    assert token.is_running()
    assert token.reason is None

    assert token.stop(StopReason.END_OF_STREAM) is True
    assert token.stop(StopReason.SIGNAL) is False

    assert not token.is_running()
    assert token.reason == StopReason.END_OF_STREAM


def test_token_wait_wakes_on_stop():
    token = ShutdownToken()
    assert token.wait(0.01) is False

    threading.Timer(0.05, token.stop, args=(StopReason.SIGNAL,)).start()
    assert token.wait(5.0) is True


def test_context_defaults_are_independent():
    a = PipelineContext(bounds=AreaBounds())
    b = PipelineContext(bounds=AreaBounds())
    assert a.slot is not b.slot
    assert a.verdicts is not b.verdicts
    assert a.token is not b.token
