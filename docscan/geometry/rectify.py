# docscan/geometry/rectify.py
from __future__ import annotations
from typing import Tuple, Union
import logging
import cv2
import numpy as np

from docscan.core.contracts import Corners
from docscan.core.errors import FrameTooSmallError, InvalidFrameError

log = logging.getLogger(__name__)

# Pages smaller than this on either side are not worth keeping
MIN_OUTPUT_PX = 50


def _as_corners(corners: Union[Corners, np.ndarray]) -> Corners:
    return corners if isinstance(corners, Corners) else Corners(pts=corners)


def compute_target_size(corners: Union[Corners, np.ndarray]) -> Tuple[int, int]:
    """
    (W, H) of the output page: the longer of the top/bottom edges and the longer of
    the left/right edges, rounded.
    """
    tl, tr, br, bl = _as_corners(corners).pts.astype(np.float64)
    width_top = np.linalg.norm(tr - tl)
    width_bottom = np.linalg.norm(br - bl)
    height_left = np.linalg.norm(bl - tl)
    height_right = np.linalg.norm(br - tr)
    return int(round(max(width_top, width_bottom))), int(round(max(height_left, height_right)))


def perspective_matrix(corners: Union[Corners, np.ndarray], size: Tuple[int, int]) -> np.ndarray:
    """Projective transform taking TL,TR,BR,BL onto [(0,0),(w,0),(w,h),(0,h)]."""
    w, h = size
    src = _as_corners(corners).pts.astype(np.float32)
    dst = np.array([[0, 0], [w, 0], [w, h], [0, h]], dtype=np.float32)
    return cv2.getPerspectiveTransform(src, dst)


def warp_document(
    image: np.ndarray,
    corners: Union[Corners, np.ndarray],
    *,
    min_size: int = MIN_OUTPUT_PX,
) -> np.ndarray:
    """
    Perspective-warp the page bounded by `corners` into an upright rectangle.

    Args:
        image: full-resolution source (any channel layout OpenCV can warp).
        corners: canonical TL,TR,BR,BL corners in the image's pixel coordinates.
        min_size: reject pages whose output width or height would be below this.

    Returns:
        Rectified image of shape (H, W[, C]).

    Raises:
        FrameTooSmallError if the output would be smaller than min_size on either side.
    """
    if image is None or image.ndim < 2 or image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidFrameError("cannot rectify an empty image")
    c = _as_corners(corners)
    out_w, out_h = compute_target_size(c)
    if out_w < min_size or out_h < min_size:
        raise FrameTooSmallError(f"rectified page {out_w}x{out_h} below {min_size}px")

    M = perspective_matrix(c, (out_w, out_h))
    rectified = cv2.warpPerspective(image, M, (out_w, out_h), flags=cv2.INTER_LINEAR,
                                    borderMode=cv2.BORDER_REPLICATE)
    log.debug("[rectify] %dx%d -> %dx%d", image.shape[1], image.shape[0], out_w, out_h)
    return rectified
