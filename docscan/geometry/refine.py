# docscan/geometry/refine.py
from __future__ import annotations
from typing import Tuple
import logging
import math
import cv2
import numpy as np

log = logging.getLogger(__name__)


def refine_window(scale: float, win: int = 5, max_win: int = 25) -> int:
    """
    Half-size of the cornerSubPix search window at source resolution.

    Corners found on a working copy are off by a couple of working pixels (edge maps are
    dilated), which is 1/scale source pixels each.
    """
    s = scale if scale > 0 else 1.0
    return int(min(max_win, max(win, math.ceil(3.0 / s))))


def refine_corners(gray: np.ndarray, pts: np.ndarray, win: int = 5) -> Tuple[np.ndarray, bool]:
    """
    Snap each corner to the sub-pixel corner inside a (2*win+1)² window.

    A refined point is kept only if it stays inside the frame and moved less than 2*win;
    otherwise the original point is kept. Returns (pts, any_moved).
    """
    H, W = gray.shape[:2]
    q = np.asarray(pts, np.float32).reshape(4, 2).copy()
    if H < 2 * win + 5 or W < 2 * win + 5:
        return q, False

    smooth = cv2.GaussianBlur(gray, (3, 3), 0)
    criteria = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 40, 0.01)
    moved = False
    for i in range(4):
        x, y = float(q[i, 0]), float(q[i, 1])
        if not (win <= x < W - win and win <= y < H - win):
            continue
        pt = np.array([[[x, y]]], dtype=np.float32)
        try:
            cv2.cornerSubPix(smooth, pt, (win, win), (-1, -1), criteria)
        except cv2.error as e:
            log.debug("[refine] cornerSubPix failed at (%.1f,%.1f): %s", x, y, e)
            continue
        nx, ny = float(pt[0, 0, 0]), float(pt[0, 0, 1])
        if not (0 <= nx < W and 0 <= ny < H):
            continue
        if math.hypot(nx - x, ny - y) >= 2 * win:
            continue
        q[i] = (nx, ny)
        moved = True
    return q, moved
