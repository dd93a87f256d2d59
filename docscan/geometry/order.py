# docscan/geometry/order.py
from __future__ import annotations
import math
import numpy as np

from docscan.core.contracts import Corners


def order_corners_sum_diff(pts: np.ndarray) -> np.ndarray:
    """
    Return TL, TR, BR, BL given 4 unordered points.

    smallest x+y → top-left, largest x+y → bottom-right
    smallest x-y → bottom-left, largest x-y → top-right

    Assumes a camera looking down at the page; past ~45° of rotation two labels can land
    on the same point, see order_corners_clockwise().
    """
    p = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    s = p[:, 0] + p[:, 1]
    d = p[:, 0] - p[:, 1]
    # stable sorts keep first-seen on ties
    by_sum = np.argsort(s, kind="stable")
    by_diff = np.argsort(d, kind="stable")
    tl, br = p[by_sum[0]], p[by_sum[3]]
    bl, tr = p[by_diff[0]], p[by_diff[3]]
    return np.array([tl, tr, br, bl], dtype=np.float32)


def order_corners_angular(pts: np.ndarray) -> np.ndarray:
    """
    Rotation-robust ordering: walk clockwise (image coords, y down) around the centroid,
    starting from the point with the smallest x+y.
    """
    p = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    c = p.mean(axis=0)
    ang = np.array([math.atan2(float(q[1] - c[1]), float(q[0] - c[0])) for q in p])
    ring = p[np.argsort(ang, kind="stable")]  # increasing angle = clockwise on screen
    start = int(np.argmin(ring[:, 0] + ring[:, 1]))
    return np.roll(ring, -start, axis=0).astype(np.float32)


def _distinct(q: np.ndarray) -> bool:
    for i in range(4):
        for j in range(i + 1, 4):
            if np.allclose(q[i], q[j]):
                return False
    return True


def order_corners_clockwise(pts: np.ndarray, method: str = "sum_diff") -> np.ndarray:
    """
    Canonical TL, TR, BR, BL order.

    "sum_diff" is the default; when it labels one point twice or yields a self-intersecting
    polygon the angular ordering is used instead. "angular" always uses the angular walk.
    """
    p = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    if method == "angular":
        return order_corners_angular(p)
    if method != "sum_diff":
        raise ValueError(f"unknown corner order method: {method!r}")
    q = order_corners_sum_diff(p)
    if _distinct(q) and Corners(pts=q).is_convex():
        return q
    return order_corners_angular(p)


def canonicalize(pts: np.ndarray, method: str = "sum_diff") -> Corners:
    return Corners(pts=order_corners_clockwise(pts, method))
