"""
Frame ingestion: reading images, wrapping raw camera buffers and producing the
bounded-resolution working copy the detector runs on.
"""

from __future__ import annotations
from typing import Union
import cv2
import numpy as np
from PIL import Image, ImageOps

from docscan.core.contracts import CHANNEL_ORDERS, Frame, Point
from docscan.core.errors import InvalidFrameError

_TO_GRAY = {
    "bgr": cv2.COLOR_BGR2GRAY,
    "bgra": cv2.COLOR_BGRA2GRAY,
    "rgb": cv2.COLOR_RGB2GRAY,
    "rgba": cv2.COLOR_RGBA2GRAY,
}

_TO_BGR = {
    "gray": cv2.COLOR_GRAY2BGR,
    "bgra": cv2.COLOR_BGRA2BGR,
    "rgb": cv2.COLOR_RGB2BGR,
    "rgba": cv2.COLOR_RGBA2BGR,
}


def load_image(path: str, apply_exif: bool = True) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Phone photos store their rotation in EXIF; with apply_exif the pixels are turned upright.
    Raises FileNotFoundError if not found.
    """
    if apply_exif:
        try:
            with Image.open(path) as pil:
                pil = ImageOps.exif_transpose(pil)
                rgb = np.asarray(pil.convert("RGB"))
            return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        except FileNotFoundError:
            raise FileNotFoundError(f"Could not read image at: {path}")
        except OSError:
            pass  # not something Pillow decodes; let OpenCV try
    # OpenCV honours EXIF orientation on its own unless told not to
    flags = cv2.IMREAD_COLOR if apply_exif else cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION
    img = cv2.imread(path, flags)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def _guess_order(pixels: np.ndarray) -> str:
    if pixels.ndim == 2:
        return "gray"
    return "bgra" if pixels.shape[2] == 4 else "bgr"


def as_frame(image: Union[np.ndarray, Frame], channel_order: str = None) -> Frame:
    if isinstance(image, Frame):
        return image
    pixels = np.asarray(image)
    order = channel_order or _guess_order(pixels)
    return Frame(pixels=pixels, scale=1.0, channel_order=order)


def validate_frame(frame: Frame) -> Frame:
    """Reject frames the pipeline cannot work on; the caller must treat them as not ready."""
    px = frame.pixels
    if px is None or px.ndim not in (2, 3) or frame.is_empty():
        raise InvalidFrameError(f"frame has no pixels (shape={getattr(px, 'shape', None)})")
    if px.dtype != np.uint8:
        raise InvalidFrameError(f"frame must be 8-bit, got dtype {px.dtype}")
    if frame.channel_order not in CHANNEL_ORDERS:
        raise InvalidFrameError(f"unknown channel order: {frame.channel_order!r}")
    channels = 1 if px.ndim == 2 else px.shape[2]
    expected = {"gray": 1, "bgr": 3, "rgb": 3, "bgra": 4, "rgba": 4}[frame.channel_order]
    if channels != expected:
        raise InvalidFrameError(
            f"{frame.channel_order} frame needs {expected} channel(s), got {channels}")
    if frame.scale <= 0:
        raise InvalidFrameError(f"invalid scale: {frame.scale}")
    return frame


def frame_from_buffer(data, width: int, height: int, channels: int = 4,
                      channel_order: str = "rgba") -> Frame:
    """
    Wrap a raw interleaved pixel buffer (e.g. an RGBA camera snapshot) as a Frame.
    The buffer length must be exactly width * height * channels.
    """
    if width <= 0 or height <= 0:
        raise InvalidFrameError(f"video has no dimensions ({width}x{height})")
    buf = np.frombuffer(data, dtype=np.uint8) if not isinstance(data, np.ndarray) \
        else np.asarray(data, dtype=np.uint8).ravel()
    expected = width * height * channels
    if buf.size != expected:
        raise InvalidFrameError(f"pixel length mismatch: got {buf.size} expected {expected}")
    shape = (height, width) if channels == 1 else (height, width, channels)
    return validate_frame(Frame(pixels=buf.reshape(shape).copy(), scale=1.0,
                                channel_order=channel_order))


def to_gray(frame: Frame) -> np.ndarray:
    if frame.channel_order == "gray":
        return frame.pixels
    return cv2.cvtColor(frame.pixels, _TO_GRAY[frame.channel_order])


def to_bgr(image: np.ndarray, channel_order: str) -> np.ndarray:
    if channel_order == "bgr":
        return image
    return cv2.cvtColor(image, _TO_BGR[channel_order])


def downscale(image: Union[np.ndarray, Frame], max_dim: int) -> Frame:
    """
    Produce a working copy whose long edge is at most max_dim.

    scale = min(1, max_dim / long_edge); new dims are round(dim * scale).
    The returned scale maps working points back by division. The result's scale is
    relative to the original capture, so downscaling an already-downscaled frame composes.
    """
    src = validate_frame(as_frame(image))
    h, w = src.height, src.width
    scale = min(1.0, float(max_dim) / float(max(h, w)))
    if scale >= 1.0:
        return Frame(pixels=src.pixels, scale=src.scale, channel_order=src.channel_order)
    sw = max(1, int(round(w * scale)))
    sh = max(1, int(round(h * scale)))
    small = cv2.resize(src.pixels, (sw, sh), interpolation=cv2.INTER_AREA)
    return Frame(pixels=small, scale=src.scale * scale, channel_order=src.channel_order)


def map_to_source(pt: Point, scale: float) -> Point:
    return float(pt[0]) / scale, float(pt[1]) / scale


def map_to_working(pt: Point, scale: float) -> Point:
    return float(pt[0]) * scale, float(pt[1]) * scale
