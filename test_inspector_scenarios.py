"""
End-to-end inspector scenarios with fake capture and fake MQTT.

The real threads run (worker, telemetry, acquisition on the test thread);
only the camera, the window and the broker are replaced.

Scenarios:
1. In-range part → telemetry reports {"Defect": "0"}
2. Undersized part → telemetry reports {"Defect": "1"}
3. Empty source → clean shutdown, nothing published after stop
4. Busy worker → frames dropped, analyzed frames strictly newer
5. Key press / SIGTERM → matching stop reason, full teardown
6. Exit status: only a source that yields nothing is a failure
"""

import signal
import threading
import time

import numpy as np
import pytest

from linecheck_inspector import (
    AcquisitionLoop,
    CaptureError,
    ClassificationVerdict,
    DefectWorker,
    HeadlessDisplay,
    InspectorConfig,
    InspectorService,
    LifecycleState,
    PartDetector,
    PipelineContext,
    StopReason,
)
from linecheck_inspector.acquisition import compute_display_delay
from linecheck_inspector.rendering import OverlayRenderer
from run_inspector import InspectorApp


def make_frame(width: int = 0, height: int = 0) -> np.ndarray:
    frame = np.zeros((540, 960, 3), dtype=np.uint8)
    if width and height:
        frame[150:150 + height, 200:200 + width] = 255
    return frame


class FakeCapture:
    """Serves one frame over and over until should_stop() or max_frames."""

    def __init__(self, frame=None, max_frames=3000, should_stop=None, fps=0.0):
        self.frame = frame
        self.max_frames = max_frames
        self.should_stop = should_stop or (lambda: False)
        self.fps = fps
        self.served = 0
        self.opened = False
        self.release_count = 0

    def open(self):
        self.opened = True

    def next_frame(self):
        if self.frame is None or self.served >= self.max_frames or self.should_stop():
            return None
        self.served += 1
        return self.frame.copy()

    def release(self):
        self.release_count += 1


class RecordingPublisher:
    """Stands in for DefectPublisher; remembers how much the worker had done."""

    def __init__(self):
        self.worker = None
        self.records = []
        self.connected = False
        self.disconnected = False

    def connect(self, timeout=10.0):
        self.connected = True
        return True

    def disconnect(self):
        self.disconnected = True

    def publish_defect(self, message):
        analyzed = self.worker.frames_analyzed if self.worker else 0
        self.records.append((message.to_dict(), analyzed))
        return True

    def published_after_analysis(self):
        return [payload for payload, analyzed in self.records if analyzed >= 1]


class FakeControlPlane:
    def __init__(self):
        self.statuses = []
        self.connected = False

    def connect(self, timeout=5.0):
        self.connected = True
        return True

    def disconnect(self):
        self.connected = False

    def publish_status(self, status, details=None):
        self.statuses.append(status)
        return True


class KeyAfter:
    """Display whose wait() reports a key press once n frames were shown."""

    def __init__(self, n):
        self.n = n
        self.shown = 0
        self.closed = False

    def show(self, frame):
        self.shown += 1

    def wait(self, delay_ms):
        return self.shown >= self.n

    def close(self):
        self.closed = True


def _config(**overrides) -> InspectorConfig:
    params = dict(display_enabled=False, default_delay_ms=1, worker_idle_seconds=0.001)
    params.update(overrides)
    return InspectorConfig(**params)


def _service(capture, publisher=None, display=None, control_plane=None,
             telemetry_interval=0.01, join_timeout=5.0, **config_overrides) -> InspectorService:
    config = _config(**config_overrides)
    context = PipelineContext(bounds=config.bounds)
    service = InspectorService(
        config=config,
        capture=capture,
        display=display or HeadlessDisplay(context.token),
        publisher=publisher,
        control_plane=control_plane,
        context=context,
        telemetry_interval=telemetry_interval,
        join_timeout=join_timeout,
    )
    if publisher is not None:
        publisher.worker = service.worker
    return service


def _run_until_reported(blob_wh):
    publisher = RecordingPublisher()
    capture = FakeCapture(
        frame=make_frame(*blob_wh),
        should_stop=lambda: len(publisher.published_after_analysis()) >= 2,
    )
    service = _service(capture, publisher=publisher)

    service.setup()
    service.start()
    reason = service.run()

    return service, publisher, reason


# ─────────────────────────────────────────────────────────────────────────────
# End-to-end
# ─────────────────────────────────────────────────────────────────────────────

def test_in_range_part_reports_no_defect():
    service, publisher, reason = _run_until_reported((200, 100))

    assert reason == StopReason.END_OF_STREAM
    assert publisher.published_after_analysis()[-1] == {"Defect": "0"}
    assert service.worker.frames_analyzed >= 1
    assert service.context.verdicts.read().defect is False


def test_undersized_part_reports_defect():
    service, publisher, reason = _run_until_reported((100, 50))

    assert reason == StopReason.END_OF_STREAM
    assert publisher.published_after_analysis()[-1] == {"Defect": "1"}
    assert service.context.verdicts.read().defect is True
    assert publisher.connected and publisher.disconnected


def test_empty_source_shuts_down_cleanly():
    publisher = RecordingPublisher()
    capture = FakeCapture(frame=None)
    service = _service(capture, publisher=publisher, telemetry_interval=1.0)

    service.setup()
    service.start()
    started = time.monotonic()
    reason = service.run()

    assert time.monotonic() - started < 1.0
    assert reason == StopReason.END_OF_STREAM
    assert service.frames_captured == 0
    assert service.state == LifecycleState.STOPPED
    assert not service.worker.is_alive()
    assert not service.telemetry.is_alive()
    assert capture.release_count == 1

    published = len(publisher.records)
    time.sleep(0.05)
    assert len(publisher.records) == published
    assert all(payload == {"Defect": "0"} for payload, _ in publisher.records)


def test_key_press_stops_with_user_request():
    display = KeyAfter(3)
    capture = FakeCapture(frame=make_frame(200, 100))
    service = _service(capture, display=display)

    service.setup()
    service.start()
    reason = service.run()

    assert reason == StopReason.USER_REQUEST
    assert service.frames_captured == 3
    assert display.closed
    assert service.telemetry is None
    assert service.state == LifecycleState.STOPPED


def test_sigterm_stops_with_signal_reason():
    capture = FakeCapture(frame=make_frame(200, 100), max_frames=10 ** 9)
    service = _service(capture, publisher=RecordingPublisher())

    service.setup()
    service.start()
    threading.Timer(0.1, service._handle_sigterm, args=(signal.SIGTERM, None)).start()
    reason = service.run()

    assert reason == StopReason.SIGNAL
    assert service.frames_captured > 0
    assert not service.worker.is_alive()
    assert service.context.token.stop(StopReason.SIGNAL) is False
    assert service.context.token.reason == StopReason.SIGNAL


def test_stop_is_idempotent_and_reports_status():
    control_plane = FakeControlPlane()
    capture = FakeCapture(frame=make_frame(200, 100), max_frames=5)
    service = _service(capture, control_plane=control_plane)

    service.setup()
    service.start()
    assert service.state == LifecycleState.RUNNING
    service.run()
    service.stop()
    service.stop(StopReason.SIGNAL)

    assert capture.release_count == 1
    assert control_plane.statuses == ["running", "stopped"]
    assert service.context.token.reason == StopReason.END_OF_STREAM


def test_start_requires_setup():
    service = _service(FakeCapture(frame=None))
    with pytest.raises(RuntimeError):
        service.start()


def test_open_failure_propagates():
    class BrokenCapture(FakeCapture):
        def open(self):
            raise CaptureError("Unable to open video source: missing.mp4")

    service = _service(BrokenCapture())
    with pytest.raises(CaptureError):
        service.setup()

    service.stop()
    assert service.state == LifecycleState.STOPPED


class HangingPublisher(RecordingPublisher):
    """publish_defect() blocks until released, like a wedged socket write."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def publish_defect(self, message):
        self.entered.set()
        self.release.wait(5.0)
        return super().publish_defect(message)


def test_stuck_telemetry_keeps_its_client_open():
    publisher = HangingPublisher()
    capture = FakeCapture(frame=make_frame(200, 100), max_frames=3)
    service = _service(capture, publisher=publisher, join_timeout=0.05)

    service.setup()
    service.start()
    assert publisher.entered.wait(2.0)
    service.run()

    try:
        assert service.telemetry.is_alive()
        assert not service.worker.is_alive()
        assert not publisher.disconnected
        assert capture.release_count == 1
        assert service.state == LifecycleState.STOPPED
    finally:
        publisher.release.set()
        assert service.telemetry.join(2.0)


# ─────────────────────────────────────────────────────────────────────────────
# Exit status
# ─────────────────────────────────────────────────────────────────────────────

class SigtermOnConnect(FakeControlPlane):
    """Delivers SIGTERM while start() is still connecting to the broker."""

    def __init__(self):
        super().__init__()
        self.service = None

    def connect(self, timeout=5.0):
        self.service._handle_sigterm(signal.SIGTERM, None)
        return False


@pytest.fixture
def restore_sigterm():
    previous = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, previous)


def _app_for(service) -> InspectorApp:
    app = InspectorApp(config=service.config)
    app.service = service
    return app


def test_sigterm_before_first_frame_exits_zero(restore_sigterm):
    control_plane = SigtermOnConnect()
    service = _service(FakeCapture(frame=make_frame(200, 100)), control_plane=control_plane)
    control_plane.service = service
    service.setup()

    status = _app_for(service).run()

    assert status == 0
    assert service.context.token.reason == StopReason.SIGNAL
    assert service.frames_captured == 0
    assert service.state == LifecycleState.STOPPED


def test_key_press_exits_zero(restore_sigterm):
    service = _service(FakeCapture(frame=make_frame(200, 100)), display=KeyAfter(2))
    service.setup()

    assert _app_for(service).run() == 0
    assert service.context.token.reason == StopReason.USER_REQUEST


def test_source_without_frames_exits_one(restore_sigterm):
    service = _service(FakeCapture(frame=None))
    service.setup()

    assert _app_for(service).run() == 1
    assert service.context.token.reason == StopReason.END_OF_STREAM


def test_acquisition_error_exits_one(restore_sigterm):
    class BrokenRead(FakeCapture):
        def next_frame(self):
            raise OSError("device unplugged")

    service = _service(BrokenRead(frame=make_frame()))
    service.setup()

    assert _app_for(service).run() == 1
    assert service.context.token.reason == StopReason.ERROR
    assert service.state == LifecycleState.STOPPED


def test_installed_handler_turns_sigterm_into_stop(restore_sigterm):
    service = _service(FakeCapture(frame=None))
    service.install_signal_handler()

    signal.raise_signal(signal.SIGTERM)

    assert service.context.token.reason == StopReason.SIGNAL


# ─────────────────────────────────────────────────────────────────────────────
# Drop policy
# ─────────────────────────────────────────────────────────────────────────────

class SlowDetector(PartDetector):
    def measure(self, image):
        time.sleep(0.02)
        return super().measure(image)


class RecordingWorker(DefectWorker):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen_ids = []

    def process(self, frame):
        self.seen_ids.append(frame.frame_id)
        return super().process(frame)


def test_busy_worker_drops_frames_and_stays_in_order():
    context = PipelineContext(bounds=_config().bounds)
    worker = RecordingWorker(context, detector=SlowDetector(), idle_seconds=0.001)
    loop = AcquisitionLoop(
        context,
        capture=FakeCapture(frame=make_frame(200, 100), max_frames=200),
        display=HeadlessDisplay(context.token),
        delay_ms=1,
    )

    worker.start()
    reason = loop.run()
    assert worker.join(2.0)

    assert reason == StopReason.END_OF_STREAM
    assert loop.frames_captured == 200
    assert loop.frames_dropped > 0
    assert 0 < len(worker.seen_ids) <= loop.frames_captured
    assert all(a < b for a, b in zip(worker.seen_ids, worker.seen_ids[1:]))


# ─────────────────────────────────────────────────────────────────────────────
# Acquisition step and overlay
# ─────────────────────────────────────────────────────────────────────────────

def test_step_resizes_and_keeps_worker_copy_clean():
    context = PipelineContext(bounds=_config().bounds)
    display = HeadlessDisplay()
    loop = AcquisitionLoop(context, capture=FakeCapture(), display=display)

    shown = loop.step(np.zeros((480, 640, 3), dtype=np.uint8))

    assert shown.shape == (540, 960, 3)
    assert shown.any()  # label drawn
    assert display.frames_shown == 1

    handed_off = context.slot.take()
    assert handed_off.frame_id == 1
    assert handed_off.image.shape == (540, 960, 3)
    assert not handed_off.image.any()


def test_step_draws_part_boxes_from_latest_verdict():
    context = PipelineContext(bounds=_config().bounds)
    context.verdicts.write(ClassificationVerdict(defect=True), boxes=((300, 200, 100, 80),))
    loop = AcquisitionLoop(context, capture=FakeCapture(), display=HeadlessDisplay())

    shown = loop.step(make_frame())

    assert shown[200, 350].tolist() == [0, 0, 255]  # top edge, red in BGR
    assert not shown[240, 350].any()  # inside the box


def test_renderer_label_changes_with_verdict():
    renderer = OverlayRenderer()
    ok = renderer.draw_verdict(make_frame(), ClassificationVerdict(defect=False))
    bad = renderer.draw_verdict(make_frame(), ClassificationVerdict(defect=True))

    assert ok.any() and bad.any()
    assert not np.array_equal(ok, bad)


@pytest.mark.parametrize(
    "fps, is_file, expected",
    [
        (25.0, True, 40),
        (0.0, True, 5),
        (30.0, False, 5),
    ],
)
def test_compute_display_delay(fps, is_file, expected):
    assert compute_display_delay(fps, is_file, default_delay_ms=5) == expected
