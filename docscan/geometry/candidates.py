# docscan/geometry/candidates.py
"""
Candidate generation: several independent binarizations of the working frame, each
followed by external-contour extraction and a ladder of polygon approximations.

Strategies (in the order they run):
  1. Canny at several threshold pairs, then close + dilate to bridge broken edges
  2. Adaptive (local contrast) threshold at several block sizes
  3. Otsu global threshold + closing
  4. Heavy blur + Canny for textured / noisy backgrounds

Every binary map is produced lazily and dropped as soon as its contours are read, so a
fail-fast run never computes the strategies it does not need.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional, Sequence, Tuple
import logging
import math
import cv2
import numpy as np

from docscan.core.contracts import QuadCandidate

log = logging.getLogger(__name__)

COLLECT_ALL = "collect_all"
FAIL_FAST = "fail_fast"

# a binary map this full is a threshold that found nothing (e.g. a uniform frame)
DEGENERATE_FILL = 0.99


# ----------------------------------------------------------------------------- #
# Binarizations                                                                  #
# ----------------------------------------------------------------------------- #

def _kernel(k: int) -> np.ndarray:
    return np.ones((k, k), np.uint8)


def binarize_canny(blurred: np.ndarray, low: int, high: int, ksize: int = 3) -> np.ndarray:
    """Canny edges, closed (dilate→erode) and dilated once more to fill gaps."""
    kernel = _kernel(ksize)
    edges = cv2.Canny(blurred, low, high)
    edges = cv2.dilate(edges, kernel)
    edges = cv2.erode(edges, kernel)
    return cv2.dilate(edges, kernel)


def binarize_adaptive(blurred: np.ndarray, block: int, c: int, ksize: int = 3) -> np.ndarray:
    block = max(3, int(block) | 1)
    kernel = _kernel(ksize)
    thresh = cv2.adaptiveThreshold(blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                                   cv2.THRESH_BINARY_INV, block, c)
    thresh = cv2.morphologyEx(thresh, cv2.MORPH_CLOSE, kernel)
    return cv2.dilate(thresh, kernel)


def binarize_otsu(blurred: np.ndarray, ksize: int = 5) -> np.ndarray:
    kernel = _kernel(ksize)
    _, otsu = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    otsu = cv2.morphologyEx(otsu, cv2.MORPH_CLOSE, kernel)
    return cv2.dilate(otsu, kernel)


def binarize_heavy_blur(gray: np.ndarray, blur_ksize: int = 11, low: int = 40,
                        high: int = 120, ksize: int = 5) -> np.ndarray:
    b = max(3, int(blur_ksize) | 1)
    heavy = cv2.GaussianBlur(gray, (b, b), 0)
    return binarize_canny(heavy, low, high, ksize)


def iter_binaries(gray: np.ndarray, blurred: np.ndarray, cfg: Dict) -> Iterator[Tuple[str, np.ndarray]]:
    """Yield (strategy tag, binary map) pairs, one strategy at a time."""
    canny = cfg.get("canny", {})
    for low, high in canny.get("thresholds", [[50, 150]]):
        yield f"canny[{low},{high}]", binarize_canny(blurred, low, high, canny.get("kernel", 3))

    adaptive = cfg.get("adaptive", {})
    for block, c in adaptive.get("params", [[15, 5]]):
        yield f"adaptive[b={block},C={c}]", binarize_adaptive(blurred, block, c, adaptive.get("kernel", 3))

    otsu = cfg.get("otsu", {})
    if otsu.get("enabled", True):
        yield "otsu", binarize_otsu(blurred, otsu.get("kernel", 5))

    hb = cfg.get("heavy_blur", {})
    if hb.get("enabled", True):
        yield "heavyBlur+canny", binarize_heavy_blur(gray, hb.get("ksize", 11), hb.get("low", 40),
                                                     hb.get("high", 120), hb.get("kernel", 5))


# ----------------------------------------------------------------------------- #
# Quad filters                                                                   #
# ----------------------------------------------------------------------------- #

def interior_angles(pts: np.ndarray) -> List[float]:
    """Angle (degrees) at each vertex between its two adjacent edges, polygon order."""
    p = np.asarray(pts, np.float64).reshape(-1, 2)
    n = len(p)
    out = []
    for i in range(n):
        p0, p1, p2 = p[(i - 1) % n], p[i], p[(i + 1) % n]
        v1, v2 = p0 - p1, p2 - p1
        n1, n2 = float(np.linalg.norm(v1)), float(np.linalg.norm(v2))
        if n1 < 1.0 or n2 < 1.0:
            out.append(0.0)  # degenerate edge
            continue
        cos = float(np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0))
        out.append(math.degrees(math.acos(cos)))
    return out


def has_reasonable_angles(pts: np.ndarray, lo: float = 45.0, hi: float = 135.0) -> bool:
    """Reject slivers: every interior angle must sit inside [lo, hi]."""
    return all(lo <= a <= hi for a in interior_angles(pts))


def approx_quad(contour: np.ndarray, epsilons: Sequence[float],
                angle_range: Sequence[float] = (45.0, 135.0)) -> Tuple[Optional[np.ndarray], float]:
    """
    Walk the tolerance ladder; first approximation with exactly 4 vertices that is convex
    and passes the angle filter wins. Returns (pts (4,2) float32, epsilon) or (None, 0.0).
    """
    peri = cv2.arcLength(contour, True)
    if peri <= 0:
        return None, 0.0
    lo, hi = angle_range
    for eps in epsilons:
        approx = cv2.approxPolyDP(contour, eps * peri, True)
        if len(approx) != 4:
            continue
        if not cv2.isContourConvex(approx):
            continue
        quad = approx.reshape(4, 2).astype(np.float32)
        if not has_reasonable_angles(quad, lo, hi):
            continue
        return quad, float(eps)
    return None, 0.0


def quads_from_binary(binary: np.ndarray, cfg: Dict, tag: str = "") -> List[QuadCandidate]:
    h, w = binary.shape[:2]
    min_area = float(cfg.get("min_area_ratio", 0.04)) * float(h * w)
    if cv2.countNonZero(binary) >= DEGENERATE_FILL * h * w:
        return []
    cnts, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not cnts:
        return []

    areas = [(float(cv2.contourArea(c)), i) for i, c in enumerate(cnts)]
    kept = [(a, i) for a, i in areas if a >= min_area]
    # biggest contours first; ties keep contour order
    kept.sort(key=lambda t: (-t[0], t[1]))
    kept = kept[: int(cfg.get("max_contours", 10))]

    epsilons = cfg.get("epsilons", [0.02, 0.03, 0.04, 0.05, 0.06, 0.08])
    angle_range = cfg.get("angle_range", (45.0, 135.0))
    out: List[QuadCandidate] = []
    for area, i in kept:
        quad, eps = approx_quad(cnts[i], epsilons, angle_range)
        if quad is None:
            continue
        out.append(QuadCandidate(pts=quad, area=area, tag=f"{tag} eps={eps:g}"))
    if cfg.get("debug"):
        log.debug("[candidates] %s: contours=%d kept=%d quads=%d",
                  tag, len(cnts), len(kept), len(out))
    return out


def generate_candidates(gray: np.ndarray, blurred: np.ndarray, cfg: Dict,
                        mode: str = COLLECT_ALL) -> List[QuadCandidate]:
    """
    Run the strategies over a working-resolution gray frame.

    collect_all: every strategy runs and all quads are returned.
    fail_fast:   stop after the first strategy that produced at least one quad.
    """
    if mode not in (COLLECT_ALL, FAIL_FAST):
        raise ValueError(f"unknown strategy mode: {mode!r}")
    found: List[QuadCandidate] = []
    tried = 0
    for tag, binary in iter_binaries(gray, blurred, cfg):
        tried += 1
        quads = quads_from_binary(binary, cfg, tag)
        del binary
        found.extend(quads)
        if quads and mode == FAIL_FAST:
            break
    log.debug("[candidates] mode=%s strategies=%d candidates=%d", mode, tried, len(found))
    return found
