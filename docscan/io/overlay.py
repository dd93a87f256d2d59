# docscan/io/overlay.py
from __future__ import annotations
from typing import Tuple, Union
import cv2
import numpy as np

from docscan.core.contracts import Corners

Color = Tuple[int, int, int]


def draw_quad(img: np.ndarray, corners: Union[Corners, np.ndarray], color: Color = (0, 200, 0),
              thickness: int = 2, fill_alpha: float = 0.2, dot_radius: int = 6) -> np.ndarray:
    """
    Draw the document outline onto `img` in place: translucent fill, outline, and a dot on
    each corner (top-left dot drawn in red so orientation is visible). Returns `img`.
    """
    pts = corners.pts if isinstance(corners, Corners) else np.asarray(corners, np.float32)
    q = np.round(pts.reshape(4, 2)).astype(np.int32)
    if fill_alpha > 0:
        layer = img.copy()
        cv2.fillConvexPoly(layer, q, color, lineType=cv2.LINE_AA)
        cv2.addWeighted(layer, fill_alpha, img, 1.0 - fill_alpha, 0, dst=img)
    cv2.polylines(img, [q], True, color, thickness, lineType=cv2.LINE_AA)
    for i, (x, y) in enumerate(q):
        dot = (0, 0, 255) if i == 0 else color
        cv2.circle(img, (int(x), int(y)), dot_radius, dot, -1, lineType=cv2.LINE_AA)
    return img


def mask_from_quad(quad: np.ndarray, shape) -> np.ndarray:
    m = np.zeros(shape[:2], np.uint8)
    cv2.fillConvexPoly(m, np.asarray(quad).reshape(4, 2).astype(np.int32), 255)
    return m


def iou_quads(q1: np.ndarray, q2: np.ndarray, shape) -> float:
    m1 = mask_from_quad(q1, shape)
    m2 = mask_from_quad(q2, shape)
    inter = np.logical_and(m1 > 0, m2 > 0).sum()
    union = np.logical_or(m1 > 0, m2 > 0).sum()
    return float(inter / max(1, union))
