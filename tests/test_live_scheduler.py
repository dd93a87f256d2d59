"""
Live scheduler against fake hosts: throttling, backpressure, coordinate mapping and teardown.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import Future

import numpy as np
import pytest

from docscan.core.contracts import Corners
from docscan.core.errors import FailureReason
from docscan.core.messages import Failed, FoundLive
from docscan.host.client import DetectionHost
from docscan.io.camera import StillImageSource
from docscan.live.scheduler import LiveDetectionScheduler, LiveQuad

from conftest import make_white_rect_scene


class ManualHost:
    """Holds every live request until the test resolves it."""

    def __init__(self):
        self.ready = True
        self.requests = []

    @property
    def live_in_flight(self):
        return any(not f.done() for _, f in self.requests)

    def detect_live(self, frame):
        fut = Future()
        self.requests.append((frame, fut))
        return fut


class SlowHost:
    """Answers after `delay` seconds and records how many requests overlapped."""

    def __init__(self, delay=0.1, corners=None):
        self.ready = True
        self.delay = delay
        self.corners = corners
        self.outstanding = 0
        self.max_outstanding = 0
        self._lock = threading.Lock()

    def detect_live(self, frame):
        fut = Future()
        with self._lock:
            self.outstanding += 1
            self.max_outstanding = max(self.max_outstanding, self.outstanding)

        def answer():
            with self._lock:
                self.outstanding -= 1
            fut.set_result(Failed(FailureReason.NO_DOCUMENT_FOUND))

        threading.Timer(self.delay, answer).start()
        return fut


class Clock:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


def _sched(host, source=None, clock=None, **live):
    cfg = {"live": {"interval_s": 0.3, "poll_s": 0.01, **live}}
    return LiveDetectionScheduler(host, source or StillImageSource(make_white_rect_scene()),
                                  cfg, clock=clock or Clock())


def test_ticks_never_overlap_requests():
    host, clock = ManualHost(), Clock()
    s = _sched(host, clock=clock)
    assert s.tick()
    for _ in range(20):
        clock.t += 1.0
        assert not s.tick()
    assert len(host.requests) == 1
    assert s.max_in_flight == 1
    assert s.skipped == 20

    host.requests[0][1].set_result(Failed(FailureReason.NO_DOCUMENT_FOUND))
    clock.t += 1.0
    assert s.tick()
    assert len(host.requests) == 2
    assert s.max_in_flight == 1


def test_interval_throttles_dispatch():
    host, clock = ManualHost(), Clock()
    s = _sched(host, clock=clock)
    assert s.tick()
    host.requests[0][1].set_result(Failed(FailureReason.NO_DOCUMENT_FOUND))
    clock.t += 0.1
    assert not s.tick()
    clock.t += 0.25
    assert s.tick()
    assert s.dispatched == 2


def test_nothing_dispatched_until_host_ready_and_camera_sized():
    host = ManualHost()
    host.ready = False
    s = _sched(host)
    assert not s.tick()

    host.ready = True
    unsized = StillImageSource(np.zeros((0, 0, 3), np.uint8))
    s = _sched(host, source=unsized)
    assert not s.tick()
    assert host.requests == []


def test_frames_are_downscaled_and_corners_mapped_back():
    host, clock = ManualHost(), Clock()
    src = StillImageSource(np.zeros((1280, 960, 3), np.uint8))
    updates = []
    s = _sched(host, source=src, clock=clock)
    s.on_update = updates.append
    assert s.tick()

    frame, fut = host.requests[0]
    assert max(frame.width, frame.height) == 480
    assert frame.scale == pytest.approx(0.375)

    small = np.array([[37.5, 37.5], [300, 37.5], [300, 450], [37.5, 450]], np.float32)
    fut.set_result(FoundLive(corners=Corners(pts=small)))
    quad = s.latest
    assert isinstance(quad, LiveQuad)
    assert quad.frame_size == (960, 1280)
    np.testing.assert_allclose(quad.corners.pts[0], [100, 100], atol=1e-3)
    np.testing.assert_allclose(quad.corners.pts[2], [800, 1200], atol=1e-3)
    np.testing.assert_allclose(quad.normalized().pts[0], [100 / 960, 100 / 1280], atol=1e-5)
    assert len(updates) == 1 and updates[0] is quad


def test_not_found_clears_quad_but_busy_does_not():
    host, clock = ManualHost(), Clock()
    s = _sched(host, clock=clock)
    s.tick()
    host.requests[-1][1].set_result(FoundLive(corners=Corners(pts=np.eye(4, 2) * 100 + 10)))
    assert s.latest is not None

    clock.t += 1
    s.tick()
    host.requests[-1][1].set_result(Failed(FailureReason.BUSY))
    assert s.latest is not None

    clock.t += 1
    s.tick()
    host.requests[-1][1].set_result(Failed(FailureReason.NO_DOCUMENT_FOUND))
    assert s.latest is None


@pytest.mark.parametrize("reason,cleared", [
    (FailureReason.TIMEOUT, True),
    (FailureReason.NOT_READY, False),
    (FailureReason.CANCELLED, False),
    (FailureReason.INVALID_FRAME, False),
])
def test_only_not_found_like_failures_clear_quad(reason, cleared):
    host, clock = ManualHost(), Clock()
    s = _sched(host, clock=clock)
    s.tick()
    host.requests[-1][1].set_result(FoundLive(corners=Corners(pts=np.eye(4, 2) * 100 + 10)))
    clock.t += 1
    s.tick()
    host.requests[-1][1].set_result(Failed(reason))
    assert (s.latest is None) is cleared


def test_stop_ignores_late_results_and_clears_quad():
    host, clock = ManualHost(), Clock()
    s = _sched(host, clock=clock)
    s.tick()
    s.stop()
    host.requests[0][1].set_result(FoundLive(corners=Corners(pts=np.eye(4, 2) * 100 + 10)))
    assert s.latest is None


def test_background_thread_respects_backpressure():
    host = SlowHost(delay=0.08)
    s = LiveDetectionScheduler(host, StillImageSource(make_white_rect_scene()),
                               {"live": {"interval_s": 0.0, "poll_s": 0.005}})
    s.start()
    try:
        time.sleep(0.6)
    finally:
        s.stop()
    assert s.dispatched >= 2
    assert s.skipped > 0
    assert s.max_in_flight == 1
    assert host.max_outstanding == 1
    assert not s.running


def test_with_real_host_publishes_quad():
    host = DetectionHost()
    host.start()
    try:
        assert host.wait_ready(30)
        s = LiveDetectionScheduler(host, StillImageSource(make_white_rect_scene()),
                                   {"live": {"interval_s": 0.05, "poll_s": 0.01}})
        s.start()
        deadline = time.monotonic() + 10
        while s.latest is None and time.monotonic() < deadline:
            time.sleep(0.02)
        quad = s.latest
        s.stop()
    finally:
        host.stop()
    assert quad is not None
    truth = np.array([[100, 100], [500, 100], [500, 700], [100, 700]], np.float32)
    assert np.max(np.linalg.norm(quad.corners.pts - truth, axis=1)) <= 5.0
    assert quad.frame_size == (600, 800)
