# docscan/session.py
"""
A camera scanning session: host + live overlay bound to "the camera is on".

    with ScanSession(VideoCaptureSource(0)) as s:
        page = s.capture()
        if page.needs_manual_crop:
            page = s.crop_manual(page.frame, user_adjusted_corners)

Captures with a live quad on screen are cropped with that quad. Without one the capture
comes back with the default manual-crop corners and no page, so a UI can let the user drag
the corners and call crop_manual().
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
import logging
import numpy as np

from docscan.core.config import merge_cfg
from docscan.core.contracts import Corners, default_corners
from docscan.core.errors import FailureReason
from docscan.core.messages import Failed, Found
from docscan.enhance.filters import Adjustments, DEFAULT_FILTER, encode_jpeg, process_scan
from docscan.host.client import DetectionHost
from docscan.io.ingest import as_frame, to_bgr
from docscan.live.scheduler import LiveDetectionScheduler, LiveQuad

log = logging.getLogger(__name__)


@dataclass
class PageCapture:
    frame: Optional[np.ndarray]         # full-resolution capture, None when the camera gave nothing
    corners: Optional[Corners]          # quad used for the crop, or the proposed manual one
    raw: Optional[np.ndarray] = None    # rectified page before filtering
    page: Optional[np.ndarray] = None   # filtered page, ready to encode
    auto: bool = False                  # cropped from a detected quad
    reason: Optional[FailureReason] = None
    debug: str = ""

    @property
    def needs_manual_crop(self) -> bool:
        return self.raw is None

    def to_jpeg(self, quality: int = 92) -> bytes:
        if self.page is None:
            raise ValueError("page has not been cropped yet")
        return encode_jpeg(self.page, quality)


@dataclass
class ScanSession:
    source: object
    cfg: Optional[Dict] = None
    host: Optional[DetectionHost] = None
    filter_name: str = DEFAULT_FILTER
    adjustments: Adjustments = field(default_factory=Adjustments)

    def __post_init__(self):
        self.cfg = merge_cfg(self.cfg)
        if self.host is None:
            self.host = DetectionHost(self.cfg)
        self.scheduler = LiveDetectionScheduler(self.host, self.source, self.cfg)
        self.pages: List[PageCapture] = []
        self.active = False

    # -------------------------------------------------------------- lifecycle

    def start(self) -> "ScanSession":
        if not self.active:
            self.host.start()
            self.scheduler.start()
            self.active = True
            log.info("[session] camera session started")
        return self

    def end(self) -> None:
        if not self.active:
            return
        self.scheduler.stop()
        self.host.stop()
        self.active = False
        log.info("[session] camera session ended (%d pages)", len(self.pages))

    def __enter__(self) -> "ScanSession":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.end()

    @property
    def live_quad(self) -> Optional[LiveQuad]:
        return self.scheduler.latest

    # --------------------------------------------------------------- capture

    def _wait(self, fut):
        # the host resolves every request within its timeout; the extra second covers thread wakeups
        return fut.result(timeout=self.host.timeout_s + 1.0)

    def _finish(self, frame: np.ndarray, corners: Corners, raw: np.ndarray, auto: bool,
                debug: str = "") -> PageCapture:
        page = process_scan(raw, self.filter_name, self.adjustments)
        cap = PageCapture(frame=frame, corners=corners, raw=raw, page=page, auto=auto, debug=debug)
        self.pages.append(cap)
        return cap

    def _manual(self, frame: np.ndarray, reason: Optional[FailureReason], debug: str = "") -> PageCapture:
        h, w = frame.shape[:2]
        return PageCapture(frame=frame, corners=default_corners(w, h), reason=reason, debug=debug)

    def capture(self) -> PageCapture:
        """
        Grab a full-resolution frame and crop it with the quad currently on the overlay.

        With no quad on screen the result carries the default manual-crop corners and no page.
        If the crop itself fails, the whole frame is kept as the page. When the camera has no
        frame to give, the result has no frame and reason INVALID_FRAME; try again.
        """
        raw_frame = self.source.read()
        if raw_frame is None:
            log.warning("[session] camera delivered no frame")
            size = self.source.frame_size()
            corners = default_corners(*size) if size else None
            return PageCapture(frame=None, corners=corners, reason=FailureReason.INVALID_FRAME)
        frame = to_bgr(raw_frame, as_frame(raw_frame).channel_order)
        h, w = frame.shape[:2]

        quad = self.live_quad
        if quad is None:
            log.info("[session] no document on screen, manual crop")
            return self._manual(frame, FailureReason.NO_DOCUMENT_FOUND)

        # the overlay may have been computed on a different frame size than this capture
        corners = Corners.from_normalized(quad.normalized().pts, w, h)
        resp = self._wait(self.host.crop_with_corners(frame, corners))
        if isinstance(resp, Found):
            return self._finish(frame, corners, resp.image, auto=True, debug=quad.debug)
        log.warning("[session] crop with live quad failed (%s), keeping full frame",
                    getattr(resp, "reason", resp))
        return self._finish(frame, corners, frame.copy(), auto=False, debug=resp.debug)

    def scan_image(self, image: np.ndarray) -> PageCapture:
        """One-shot detect-and-crop of a still image (an upload rather than the live camera)."""
        frame = to_bgr(image, as_frame(image).channel_order)
        resp = self._wait(self.host.detect(frame))
        if isinstance(resp, Found):
            return self._finish(frame, resp.corners, resp.image, auto=True, debug=resp.debug)
        reason = resp.reason if isinstance(resp, Failed) else None
        log.info("[session] detection failed (%s), manual crop", reason)
        return self._manual(frame, reason, getattr(resp, "debug", ""))

    def crop_manual(self, frame: np.ndarray,
                    corners: Union[Corners, np.ndarray]) -> PageCapture:
        """Rectify user-adjusted corners (source pixels). Falls back to the whole frame on failure."""
        if not isinstance(corners, Corners):
            corners = Corners(pts=corners)
        resp = self._wait(self.host.crop_with_corners(frame, corners))
        if isinstance(resp, Found):
            return self._finish(frame, corners, resp.image, auto=False, debug=resp.debug)
        log.warning("[session] manual crop failed (%s), keeping full frame",
                    getattr(resp, "reason", resp))
        return self._finish(frame, corners, frame.copy(), auto=False, debug=resp.debug)
