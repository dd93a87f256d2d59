# docscan/live/scheduler.py
"""
Throttled live detection for the camera overlay.

A background thread ticks every `live.poll_s`. A tick grabs the newest camera frame, shrinks
it and asks the host for corners, but only when the host is ready, the camera reports a size,
nothing is in flight and `live.interval_s` has passed since the last dispatch. Frames that
arrive while a request is out are never queued, they are simply skipped.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging
import threading
import time

from docscan.core.config import merge_cfg
from docscan.core.contracts import Corners
from docscan.core.errors import treat_as_not_found
from docscan.core.messages import Failed, FoundLive
from docscan.io.ingest import as_frame, downscale

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveQuad:
    corners: Corners               # source-resolution pixels
    frame_size: Tuple[int, int]    # (w, h) of the source frame
    debug: str = ""

    def normalized(self) -> Corners:
        return self.corners.normalized(*self.frame_size)


class LiveDetectionScheduler:
    def __init__(self, host, source, cfg: Optional[Dict] = None,
                 on_update: Optional[Callable[[Optional[LiveQuad]], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.host = host
        self.source = source
        self.cfg = merge_cfg(cfg)
        self.on_update = on_update
        self._clock = clock
        lcfg = self.cfg["live"]
        self.interval_s = float(lcfg.get("interval_s", 0.3))
        self.poll_s = float(lcfg.get("poll_s", 0.05))
        self.max_dim = int(self.cfg["live_max_dim"])

        self._lock = threading.Lock()
        self._busy = False
        self._last_dispatch: Optional[float] = None
        self._generation = 0
        self._latest: Optional[LiveQuad] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

        self.dispatched = 0
        self.skipped = 0
        self.max_in_flight = 0
        self._in_flight = 0

    @property
    def latest(self) -> Optional[LiveQuad]:
        with self._lock:
            return self._latest

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------- lifecycle

    def start(self) -> "LiveDetectionScheduler":
        if self.running:
            return self
        self._stop_evt = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(self._stop_evt,),
                                        name="docscan-live", daemon=True)
        self._thread.start()
        log.info("[live] scheduler started (every %.2fs, max %dpx)", self.interval_s, self.max_dim)
        return self

    def stop(self) -> None:
        self._stop_evt.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(max(1.0, self.poll_s * 4))
        with self._lock:
            self._generation += 1
            self._busy = False
            self._in_flight = 0
            self._last_dispatch = None
            self._latest = None
        log.info("[live] scheduler stopped (dispatched=%d skipped=%d)", self.dispatched, self.skipped)

    def _run(self, stop_evt: threading.Event) -> None:
        while not stop_evt.wait(self.poll_s):
            try:
                self.tick()
            except Exception:
                # a flaky camera read must not end the overlay; the next tick retries
                log.exception("[live] tick failed")

    # ------------------------------------------------------------------ ticks

    def _frame_size(self) -> Optional[Tuple[int, int]]:
        size = self.source.frame_size()
        if not size:
            return None
        w, h = int(size[0]), int(size[1])
        return (w, h) if w > 0 and h > 0 else None

    def tick(self) -> bool:
        """One scheduling decision. Returns True when a request was dispatched."""
        now = self._clock()
        size = self._frame_size() if self.host.ready else None
        with self._lock:
            in_flight = self._busy or getattr(self.host, "live_in_flight", False)
            too_soon = (self._last_dispatch is not None
                        and now - self._last_dispatch < self.interval_s)
            if size is None or in_flight or too_soon:
                self.skipped += 1
                return False
            self._busy = True
            self._last_dispatch = now
            gen = self._generation

        dispatched = False
        try:
            raw = self.source.read()
            if raw is None:
                return False
            small = downscale(as_frame(raw), self.max_dim)
            fut = self.host.detect_live(small)
            dispatched = True
            with self._lock:
                self.dispatched += 1
                self._in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self._in_flight)
        finally:
            if not dispatched:
                self._release(gen)

        scale = small.scale
        fut.add_done_callback(lambda f: self._on_done(f, gen, scale, size))
        return True

    def _release(self, gen: int) -> None:
        with self._lock:
            if gen == self._generation:
                self._busy = False

    def _on_done(self, fut, gen: int, scale: float, size: Tuple[int, int]) -> None:
        resp = fut.result()
        quad = None
        if isinstance(resp, FoundLive) and resp.corners is not None:
            quad = LiveQuad(corners=resp.corners.scaled(1.0 / scale), frame_size=size,
                            debug=resp.debug)
        with self._lock:
            if gen != self._generation:
                return
            self._busy = False
            self._in_flight = max(0, self._in_flight - 1)
            # BUSY, NOT_READY, CANCELLED and the like say nothing about the page in view
            if isinstance(resp, Failed) and not treat_as_not_found(resp.reason):
                return
            self._latest = quad
        if self.cfg.get("debug"):
            log.debug("[live] %s", quad.debug if quad else getattr(resp, "reason", resp))
        if self.on_update is not None:
            self.on_update(quad)
