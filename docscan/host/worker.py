# docscan/host/worker.py
"""
Worker side of the background detection host.

`serve()` runs inside a background thread or a spawned child process. It loads the
image-processing runtime first (posting Ready or Error), then answers requests one at a
time until it reads the shutdown sentinel (None). A failing request never stops the loop.
"""

from __future__ import annotations
from typing import Callable, Dict, Optional
import importlib
import logging
import numpy as np

from docscan.core.config import merge_cfg
from docscan.core.errors import DocscanError, FailureReason, RuntimeUnavailableError
from docscan.core.messages import (CropWithCorners, Detect, DetectLive, Error, Failed, Found,
                                   FoundLive, Ready)

log = logging.getLogger(__name__)


class PageScanner:
    """The loaded runtime: OpenCV plus the detection pipeline bound to one config."""

    def __init__(self, cfg: Optional[Dict] = None):
        self.cfg = merge_cfg(cfg)
        # heavy imports happen here, inside the worker, not at host construction
        self._detect = importlib.import_module("docscan.geometry.detect")
        self._rectify = importlib.import_module("docscan.geometry.rectify")
        self._ingest = importlib.import_module("docscan.io.ingest")

    def warm_up(self) -> None:
        """One pass on a tiny synthetic page so the first real request is not the slow one."""
        img = np.zeros((120, 160, 3), np.uint8)
        img[30:90, 50:110] = 255
        self._detect.detect_document(img, self.cfg)

    def handle(self, req):
        rid = getattr(req, "request_id", 0)
        try:
            if isinstance(req, Detect):
                return self.detect_and_crop(req.frame, rid)
            if isinstance(req, DetectLive):
                return self.detect_live(req.frame, rid)
            if isinstance(req, CropWithCorners):
                return self.crop(req.frame, req.corners, rid)
            return Failed(FailureReason.INVALID_FRAME, f"unknown request {type(req).__name__}", rid)
        except DocscanError as e:
            return Failed(e.reason, str(e), rid)
        except Exception as e:  # the host must stay usable after any single bad request
            log.exception("[worker] request %s failed", rid)
            return Failed(FailureReason.NO_DOCUMENT_FOUND, f"error: {e}", rid)

    def detect_and_crop(self, frame, rid: int = 0):
        frame = self._ingest.validate_frame(frame)
        det = self._detect.detect_document(frame, self.cfg,
                                           max_dim=self.cfg["working_max_dim"],
                                           mode=self.cfg["strategy_mode"])
        if det is None:
            return Failed(FailureReason.NO_DOCUMENT_FOUND, "no quad found", rid)
        page = self._rectify.warp_document(frame.pixels, det.corners,
                                           min_size=int(self.cfg["min_output_px"]))
        return Found(image=page, corners=det.corners, debug=det.debug, request_id=rid)

    def detect_live(self, frame, rid: int = 0):
        frame = self._ingest.validate_frame(frame)
        det = self._detect.detect_document(frame, self.cfg,
                                           max_dim=self.cfg["live_max_dim"],
                                           mode=self.cfg["live_strategy_mode"])
        if det is None:
            return Failed(FailureReason.NO_DOCUMENT_FOUND, "no quad found", rid)
        return FoundLive(corners=det.corners, debug=det.debug, request_id=rid)

    def crop(self, frame, corners, rid: int = 0):
        frame = self._ingest.validate_frame(frame)
        page = self._rectify.warp_document(frame.pixels, corners,
                                           min_size=int(self.cfg["min_output_px"]))
        return Found(image=page, corners=corners, debug="manual corners", request_id=rid)


def load_runtime(cfg: Optional[Dict] = None) -> PageScanner:
    """
    Import and initialize the image-processing runtime.
    Raises whatever the import or warm-up raises; serve() reports it as Error.
    """
    cv2 = importlib.import_module("cv2")
    if not hasattr(cv2, "getPerspectiveTransform"):
        raise RuntimeUnavailableError("OpenCV loaded but getPerspectiveTransform not found")
    scanner = PageScanner(cfg)
    scanner.warm_up()
    log.info("[worker] runtime ready (OpenCV %s)", getattr(cv2, "__version__", "?"))
    return scanner


def serve(inbox, outbox, cfg: Optional[Dict] = None,
          loader: Callable[[Optional[Dict]], PageScanner] = load_runtime) -> None:
    """
    Worker loop. `inbox`/`outbox` are queue-like (queue.Queue or multiprocessing queues).
    """
    try:
        scanner = loader(cfg)
    except Exception as e:
        log.error("[worker] runtime failed to load: %s", e)
        outbox.put(Error(message=f"{type(e).__name__}: {e}"))
        # stay around only to drain until shutdown; every request fails
        while True:
            req = inbox.get()
            if req is None:
                return
            outbox.put(Failed(FailureReason.RUNTIME_UNAVAILABLE, "runtime failed to load",
                              getattr(req, "request_id", 0)))

    outbox.put(Ready())
    while True:
        req = inbox.get()
        if req is None:
            break
        outbox.put(scanner.handle(req))
    # dropping the scanner releases the runtime state for this session
    del scanner
    log.debug("[worker] shut down")
