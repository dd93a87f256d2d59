# docscan/geometry/score.py
"""
Common rubric for quad candidates, 0..100 in total:

  center proximity  0..40   closer to the frame center is better
  size sweet spot   0..35   peak at 35 % of the frame, near-whole-frame blobs penalized
  paper aspect      0..25   closeness to A4 / Letter / square
"""

from __future__ import annotations
from typing import Dict, Iterable, Optional, Sequence, Tuple
import logging
import math
import numpy as np

from docscan.core.contracts import QuadCandidate, ScoredCandidate
from docscan.geometry.order import order_corners_clockwise

log = logging.getLogger(__name__)

CENTER_PTS = 40.0
SIZE_PTS = 35.0
ASPECT_PTS = 25.0

PAPER_ASPECTS = (1.414, 1.294, 1.0)


def center_score(pts: np.ndarray, frame_hw: Tuple[int, int]) -> float:
    H, W = frame_hw
    c = np.asarray(pts, np.float64).reshape(4, 2).mean(axis=0)
    d = math.hypot(float(c[0]) - W / 2.0, float(c[1]) - H / 2.0)
    half_diag = math.hypot(W, H) / 2.0
    if half_diag <= 0:
        return 0.0
    return max(0.0, 1.0 - d / half_diag) * CENTER_PTS


def size_score(area: float, frame_hw: Tuple[int, int]) -> float:
    H, W = frame_hw
    frame_area = float(H * W)
    if frame_area <= 0:
        return 0.0
    r = float(area) / frame_area
    if 0.10 <= r <= 0.70:
        return (1.0 - abs(r - 0.35) / 0.35) * SIZE_PTS
    if r > 0.70:
        return max(0.0, 1.0 - (r - 0.70) / 0.30) * 10.0
    return max(0.0, r / 0.10) * 15.0


def quad_edges(pts: np.ndarray) -> Tuple[float, float]:
    """(w, h) as the longer of the opposite edge pairs of a canonical quad."""
    tl, tr, br, bl = np.asarray(pts, np.float64).reshape(4, 2)
    w = max(float(np.linalg.norm(tr - tl)), float(np.linalg.norm(br - bl)))
    h = max(float(np.linalg.norm(bl - tl)), float(np.linalg.norm(br - tr)))
    return w, h


def aspect_score(pts: np.ndarray, targets: Sequence[float] = PAPER_ASPECTS,
                 tolerance: float = 0.8, method: str = "sum_diff") -> float:
    w, h = quad_edges(order_corners_clockwise(pts, method))
    if min(w, h) <= 1e-6:
        return 0.0
    aspect = max(w, h) / min(w, h)
    delta = min(abs(aspect - t) for t in targets)
    return max(0.0, 1.0 - delta / tolerance) * ASPECT_PTS


def score_candidate(cand: QuadCandidate, frame_hw: Tuple[int, int],
                    cfg: Optional[Dict] = None) -> ScoredCandidate:
    cfg = cfg or {}
    parts = {
        "center": center_score(cand.pts, frame_hw),
        "size": size_score(cand.area, frame_hw),
        "aspect": aspect_score(cand.pts,
                               cfg.get("paper_aspects", PAPER_ASPECTS),
                               float(cfg.get("aspect_tolerance", 0.8)),
                               cfg.get("corner_order", "sum_diff")),
    }
    total = min(100.0, max(0.0, sum(parts.values())))
    return ScoredCandidate(candidate=cand, score=total, parts=parts)


def select_best(cands: Iterable[QuadCandidate], frame_hw: Tuple[int, int],
                cfg: Optional[Dict] = None) -> Optional[ScoredCandidate]:
    """Strictly highest total wins; on a tie the first-seen candidate is kept."""
    cfg = cfg or {}
    best: Optional[ScoredCandidate] = None
    for cand in cands:
        sc = score_candidate(cand, frame_hw, cfg)
        if cfg.get("debug"):
            log.debug("[score] %s total=%.1f center=%.1f size=%.1f aspect=%.1f",
                      cand.tag, sc.score, sc.parts["center"], sc.parts["size"], sc.parts["aspect"])
        if best is None or sc.score > best.score:
            best = sc
    return best
