"""
Scan filters applied to a rectified page before it is encoded for PDF assembly.

magic_color  per-channel 2nd..98th percentile stretch (paper goes white, ink goes dark)
original     brightness offset plus an S-curve contrast
grayscale    luma stretched between its 3rd and 97th percentiles
bw           Otsu threshold on luma, shifted by the brightness setting
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple
import cv2
import numpy as np

MAGIC_COLOR = "magic_color"
ORIGINAL = "original"
GRAYSCALE = "grayscale"
BW = "bw"
FILTERS = (MAGIC_COLOR, ORIGINAL, GRAYSCALE, BW)


@dataclass(frozen=True)
class Adjustments:
    brightness: int = 5   # -60..60
    contrast: int = 20    # -30..100
    sharpness: int = 40   # 0..100


NEUTRAL = Adjustments(0, 0, 0)
DEFAULT_FILTER = MAGIC_COLOR


def _sample(values: np.ndarray, max_samples: int) -> np.ndarray:
    flat = values.ravel()
    step = max(1, flat.size // max_samples)
    return flat[::step]


def _percentiles(values: np.ndarray, lo: float, hi: float, max_samples: int) -> Tuple[float, float]:
    s = _sample(values, max_samples)
    return float(np.percentile(s, lo)), float(np.percentile(s, hi))


def _s_curve(v: np.ndarray, contrast: int) -> np.ndarray:
    """v in 0..1; contrast > 0 steepens the midtones, < 0 flattens them."""
    if contrast == 0:
        return v
    p = 1.0 + contrast / 100.0
    low = 0.5 * np.power(2.0 * v, p)
    high = 1.0 - 0.5 * np.power(2.0 * (1.0 - v), p)
    return np.where(v < 0.5, low, high)


def _luma(bgr: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY).astype(np.float32)


def magic_color(bgr: np.ndarray, adj: Adjustments) -> np.ndarray:
    out = np.empty_like(bgr)
    for ch in range(3):
        plane = bgr[:, :, ch].astype(np.float32)
        p_lo, p_hi = _percentiles(plane, 2, 98, 10000)
        v = (plane - p_lo) / max(1.0, p_hi - p_lo) * 255.0
        v = np.clip(v + adj.brightness * 0.3, 0, 255)
        v = _s_curve(v / 255.0, adj.contrast) * 255.0
        out[:, :, ch] = np.clip(np.round(v), 0, 255).astype(np.uint8)
    return out


def original(bgr: np.ndarray, adj: Adjustments) -> np.ndarray:
    v = np.clip((bgr.astype(np.float32) + adj.brightness * 0.4) / 255.0, 0.0, 1.0)
    v = _s_curve(v, adj.contrast)
    return np.clip(np.round(v * 255.0), 0, 255).astype(np.uint8)


def grayscale(bgr: np.ndarray, adj: Adjustments) -> np.ndarray:
    g = _luma(bgr)
    p_lo, p_hi = _percentiles(g, 3, 97, 5000)
    g = (g - p_lo) / max(1.0, p_hi - p_lo) * 255.0 + adj.brightness * 0.4
    g = np.clip(np.round(g), 0, 255).astype(np.uint8)
    return cv2.cvtColor(g, cv2.COLOR_GRAY2BGR)


def black_and_white(bgr: np.ndarray, adj: Adjustments) -> np.ndarray:
    g = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    t, _ = cv2.threshold(g, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    t_adj = t - adj.brightness * 0.5
    bw = np.where(g.astype(np.float32) > t_adj, 255, 0).astype(np.uint8)
    return cv2.cvtColor(bw, cv2.COLOR_GRAY2BGR)


def sharpen(bgr: np.ndarray, amount: float) -> np.ndarray:
    """Unsharp mask; amount in 0..1."""
    if amount <= 0:
        return bgr
    blurred = cv2.GaussianBlur(bgr, (0, 0), 1.0)
    strength = amount * 2.0
    return cv2.addWeighted(bgr, 1.0 + strength, blurred, -strength, 0)


_FILTER_FUNCS = {
    MAGIC_COLOR: magic_color,
    ORIGINAL: original,
    GRAYSCALE: grayscale,
    BW: black_and_white,
}


def process_scan(bgr: np.ndarray, filter_name: str = DEFAULT_FILTER,
                 adj: Adjustments = Adjustments()) -> np.ndarray:
    """Apply one scan filter and the sharpness pass to a BGR page image."""
    if filter_name not in _FILTER_FUNCS:
        raise ValueError(f"unknown filter {filter_name!r}, expected one of {FILTERS}")
    if bgr.ndim == 2:
        bgr = cv2.cvtColor(bgr, cv2.COLOR_GRAY2BGR)
    if filter_name == ORIGINAL and adj == NEUTRAL:
        return bgr.copy()
    out = _FILTER_FUNCS[filter_name](bgr, adj)
    if adj.sharpness > 0:
        out = sharpen(out, adj.sharpness / 100.0)
    return out


def encode_jpeg(bgr: np.ndarray, quality: int = 92) -> bytes:
    """JPEG bytes for one PDF page."""
    ok, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buf.tobytes()
