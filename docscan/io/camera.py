# docscan/io/camera.py
"""
Frame sources the live scheduler and scan session read from.

A source answers two questions: how big are its frames (None while the camera has not
delivered one yet) and what is the newest frame. Both sources below are safe to read from
the scheduler thread and the UI thread at the same time.
"""

from __future__ import annotations
from typing import Optional, Tuple, Union
import logging
import threading
import cv2
import numpy as np

from docscan.io.ingest import load_image

log = logging.getLogger(__name__)


class StillImageSource:
    """A fixed image standing in for a camera (tests, the visualize tool)."""

    def __init__(self, image: Union[str, np.ndarray]):
        self.image = load_image(image) if isinstance(image, str) else image

    def frame_size(self) -> Optional[Tuple[int, int]]:
        if self.image is None or self.image.ndim < 2:
            return None
        h, w = self.image.shape[:2]
        return (w, h) if w > 0 and h > 0 else None

    def read(self) -> Optional[np.ndarray]:
        return None if self.image is None else self.image.copy()

    def close(self) -> None:
        pass


class VideoCaptureSource:
    """
    cv2.VideoCapture opened on first use and held until close().
    `device` is a camera index or a file/stream URL.
    """

    def __init__(self, device: Union[int, str] = 0, width: Optional[int] = None,
                 height: Optional[int] = None):
        self.device = device
        self.width = width
        self.height = height
        self._cap = None
        self._size: Optional[Tuple[int, int]] = None
        self._lock = threading.Lock()

    def _get_capture(self):
        if self._cap is None:
            cap = cv2.VideoCapture(self.device)
            if not cap.isOpened():
                cap.release()
                raise RuntimeError(f"Could not open video source: {self.device!r}")
            if self.width:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.width))
            if self.height:
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.height))
            self._cap = cap
            log.info("[camera] opened %r", self.device)
        return self._cap

    def frame_size(self) -> Optional[Tuple[int, int]]:
        # unknown until the first frame arrives
        return self._size

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            ok, frame = self._get_capture().read()
            if not ok or frame is None:
                return None
            h, w = frame.shape[:2]
            self._size = (w, h)
            return frame

    def close(self) -> None:
        """Release the camera; safe to call twice."""
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                log.info("[camera] released %r", self.device)
            self._size = None

    def __enter__(self) -> "VideoCaptureSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
