# docscan/geometry/detect.py
from __future__ import annotations
from typing import Dict, Optional, Union
import logging
import cv2
import numpy as np

from docscan.core.config import merge_cfg
from docscan.core.contracts import Corners, Detection, Frame
from docscan.geometry.candidates import generate_candidates
from docscan.geometry.order import order_corners_clockwise
from docscan.geometry.refine import refine_corners, refine_window
from docscan.geometry.score import select_best
from docscan.io.ingest import as_frame, downscale, to_gray, validate_frame

log = logging.getLogger(__name__)


def prepare_working(image: Union[np.ndarray, Frame], max_dim: int, blur_ksize: int = 5):
    """
    Working copy for analysis: downscaled, gray and blurred.
    Returns (gray, blurred, scale) where scale maps the passed image onto the working copy.
    """
    src = validate_frame(as_frame(image))
    # scale relative to the image we were given, not to whatever it was cut from
    local = Frame(pixels=src.pixels, scale=1.0, channel_order=src.channel_order)
    working = downscale(local, max_dim)
    gray = to_gray(working)
    k = max(3, int(blur_ksize) | 1)
    blurred = cv2.GaussianBlur(gray, (k, k), 0)
    return gray, blurred, working.scale


def detect_document(
    image: Union[np.ndarray, Frame],
    cfg: Optional[Dict] = None,
    *,
    max_dim: Optional[int] = None,
    mode: Optional[str] = None,
) -> Optional[Detection]:
    """
    Find the single best document quad in `image`.

    Candidate generation → scoring → canonical corner order → map back to the image's
    resolution → optional sub-pixel refinement there. Returns None when no candidate
    passes the filters.
    """
    cfg = merge_cfg(cfg)
    src = validate_frame(as_frame(image))
    max_dim = int(max_dim or cfg["working_max_dim"])
    mode = mode or cfg["strategy_mode"]

    gray, blurred, scale = prepare_working(src, max_dim, cfg.get("blur_ksize", 5))
    frame_hw = gray.shape[:2]

    cands = generate_candidates(gray, blurred, cfg, mode)
    best = select_best(cands, frame_hw, cfg)
    if best is None:
        log.debug("[detect] no quad found (%d candidates, %dx%d working)",
                  len(cands), frame_hw[1], frame_hw[0])
        return None

    method = cfg.get("corner_order", "sum_diff")
    pts = order_corners_clockwise(best.candidate.pts, method) / np.float32(scale)

    refined = False
    rcfg = cfg.get("corner_refine", {})
    if rcfg.get("enabled", True):
        full_gray = gray if scale == 1.0 else to_gray(src)
        win = refine_window(scale, int(rcfg.get("win", 5)), int(rcfg.get("max_win", 25)))
        moved, refined = refine_corners(full_gray, pts, win)
        # keep the refined quad only if it is still a sane page outline
        if refined and Corners(pts=moved).is_convex():
            pts = order_corners_clockwise(moved, method)
        else:
            refined = False

    debug = (f"{best.candidate.tag} score={best.score:.1f} area={round(best.candidate.area)} "
             f"candidates={len(cands)}")
    if cfg.get("debug"):
        log.debug("[detect] %s refined=%s", debug, refined)
    return Detection(corners=Corners(pts=pts), best=best, scale=scale,
                     n_candidates=len(cands), debug=debug, refined=refined)


def detect_corners(image: Union[np.ndarray, Frame], cfg: Optional[Dict] = None, **kw) -> Optional[Corners]:
    det = detect_document(image, cfg, **kw)
    return det.corners if det is not None else None
