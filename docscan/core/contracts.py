"""
Core contracts and simple data types shared across stages.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Tuple
import numpy as np

Point = Tuple[float, float]

CHANNEL_ORDERS = ("gray", "bgr", "bgra", "rgb", "rgba")


@dataclass(frozen=True)
class Frame:
    """
    A raster plus the factor relating it to the full-resolution capture.

    pixels: np.ndarray, H×W (gray) or H×W×C, dtype uint8
    scale:  working = source * scale, so source = working / scale
    """
    pixels: np.ndarray
    scale: float = 1.0
    channel_order: str = "bgr"

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def to_source(self, pt: Point) -> Point:
        return float(pt[0]) / self.scale, float(pt[1]) / self.scale

    def to_working(self, pt: Point) -> Point:
        return float(pt[0]) * self.scale, float(pt[1]) * self.scale

    def detached(self) -> "Frame":
        """Copy whose buffer is not shared with whoever produced this frame."""
        return Frame(pixels=np.array(self.pixels, copy=True), scale=self.scale,
                     channel_order=self.channel_order)


@dataclass
class Corners:
    """
    The four document corners in image coordinates (pixels), ordered clockwise:
    [top-left, top-right, bottom-right, bottom-left].

    pts: np.ndarray with shape (4, 2), dtype float32
    """
    pts: np.ndarray

    def __post_init__(self):
        self.pts = np.asarray(self.pts, dtype=np.float32).reshape(4, 2)

    @property
    def top_left(self) -> Point:
        return float(self.pts[0, 0]), float(self.pts[0, 1])

    @property
    def top_right(self) -> Point:
        return float(self.pts[1, 0]), float(self.pts[1, 1])

    @property
    def bottom_right(self) -> Point:
        return float(self.pts[2, 0]), float(self.pts[2, 1])

    @property
    def bottom_left(self) -> Point:
        return float(self.pts[3, 0]), float(self.pts[3, 1])

    def scaled(self, factor: float) -> "Corners":
        return Corners(pts=self.pts * np.float32(factor))

    def normalized(self, width: int, height: int) -> "Corners":
        """Map to 0..1 coordinates, which is what an overlay drawn at any size wants."""
        return Corners(pts=self.pts / np.array([width, height], dtype=np.float32))

    @classmethod
    def from_normalized(cls, pts, width: int, height: int) -> "Corners":
        p = np.asarray(pts, dtype=np.float32).reshape(4, 2)
        return cls(pts=p * np.array([width, height], dtype=np.float32))

    def is_convex(self) -> bool:
        """True when TL→TR→BR→BL is a simple convex polygon (consistent turn direction)."""
        p = self.pts.astype(np.float64)
        signs = []
        for i in range(4):
            a, b, c = p[i], p[(i + 1) % 4], p[(i + 2) % 4]
            cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
            if abs(cross) < 1e-9:
                return False
            signs.append(cross > 0)
        return all(signs) or not any(signs)


def default_corners(width: int, height: int, inset: float = 0.1) -> Corners:
    """Manual-crop starting region: the frame inset by `inset` on every side."""
    lo, hi = inset, 1.0 - inset
    return Corners.from_normalized([[lo, lo], [hi, lo], [hi, hi], [lo, hi]], width, height)


@dataclass(frozen=True)
class QuadCandidate:
    """Four working-resolution points, the source contour area and the strategy that found it."""
    pts: np.ndarray
    area: float
    tag: str = ""

    @property
    def centroid(self) -> np.ndarray:
        return np.asarray(self.pts, np.float32).reshape(4, 2).mean(axis=0)


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: QuadCandidate
    score: float
    parts: Dict[str, float] = field(default_factory=dict)


@dataclass
class Detection:
    """
    Result of one detection pass.

    corners: canonical corners in the coordinates of the image that was passed in
    best:    the winning candidate (working resolution) with its score
    """
    corners: Corners
    best: ScoredCandidate
    scale: float
    n_candidates: int
    debug: str = ""
    refined: bool = False

    @property
    def score(self) -> float:
        return self.best.score

    @property
    def tag(self) -> str:
        return self.best.candidate.tag

