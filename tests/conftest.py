"""
Synthetic scenes shared by the tests. Everything is drawn with OpenCV on the fly, so no
test assets are required.
"""
from __future__ import annotations

import numpy as np
import cv2
import pytest


def make_white_rect_scene(w: int = 600, h: int = 800, x0: int = 100, y0: int = 100,
                          x1: int = 500, y1: int = 700) -> np.ndarray:
    """Black frame with a white axis-aligned page covering [x0, x1) × [y0, y1)."""
    img = np.zeros((h, w, 3), np.uint8)
    img[y0:y1, x0:x1] = 255
    return img


def make_textured_page(w: int = 420, h: int = 594) -> np.ndarray:
    """An A4-shaped page with some printed lines so filters and edges have something to chew on."""
    page = np.full((h, w, 3), 235, np.uint8)
    for y in range(60, h - 40, 28):
        cv2.line(page, (40, y), (w - 40, y), (70, 70, 70), 2)
    cv2.putText(page, "INVOICE", (40, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.1, (20, 20, 20), 2, cv2.LINE_AA)
    return page


def _paste_page(page: np.ndarray, pts_dst: np.ndarray, frame_w: int, frame_h: int,
                desk: int = 40) -> np.ndarray:
    Hp, Wp = page.shape[:2]
    frame = np.full((frame_h, frame_w, 3), desk, np.uint8)
    pts_src = np.array([[0, 0], [Wp - 1, 0], [Wp - 1, Hp - 1], [0, Hp - 1]], dtype=np.float32)
    Hmat = cv2.getPerspectiveTransform(pts_src, pts_dst)
    warped = cv2.warpPerspective(page, Hmat, (frame_w, frame_h))
    mask = np.zeros((frame_h, frame_w), np.uint8)
    cv2.fillConvexPoly(mask, np.round(pts_dst).astype(np.int32), 255)
    bg = cv2.bitwise_and(frame, frame, mask=cv2.bitwise_not(mask))
    fg = cv2.bitwise_and(warped, warped, mask=mask)
    return cv2.add(bg, fg)


def place_page_in_frame(page: np.ndarray, frame_w: int = 1000, frame_h: int = 750,
                        jitter: int = 40, seed: int = 42):
    """Warp the page by a random homography and paste it onto a darker desk."""
    rng = np.random.default_rng(seed)
    margin_x, margin_y = int(frame_w * 0.22), int(frame_h * 0.08)
    pts_dst = np.array([
        [margin_x + rng.integers(0, jitter), margin_y + rng.integers(0, jitter)],
        [frame_w - margin_x - rng.integers(0, jitter), margin_y + rng.integers(0, jitter)],
        [frame_w - margin_x - rng.integers(0, jitter), frame_h - margin_y - rng.integers(0, jitter)],
        [margin_x + rng.integers(0, jitter), frame_h - margin_y - rng.integers(0, jitter)],
    ], dtype=np.float32)
    return _paste_page(page, pts_dst, frame_w, frame_h), pts_dst


def place_page_rotated(page: np.ndarray, angle_deg: float, frame_w: int = 1200,
                       frame_h: int = 900, desk: int = 40):
    """Paste the page flat on a grey desk, centred and turned by angle_deg. Returns (frame, corners)."""
    Hp, Wp = page.shape[:2]
    half = np.array([[-(Wp - 1), -(Hp - 1)], [Wp - 1, -(Hp - 1)],
                     [Wp - 1, Hp - 1], [-(Wp - 1), Hp - 1]], np.float64) / 2.0
    t = np.deg2rad(angle_deg)
    rot = np.array([[np.cos(t), -np.sin(t)], [np.sin(t), np.cos(t)]])
    pts_dst = (half @ rot.T + [frame_w / 2.0, frame_h / 2.0]).astype(np.float32)
    return _paste_page(page, pts_dst, frame_w, frame_h, desk), pts_dst


def add_shadow(frame: np.ndarray) -> np.ndarray:
    """Soft shadow across part of the frame."""
    H, W = frame.shape[:2]
    shadow = np.zeros_like(frame)
    poly = np.array([
        [int(W * 0.2), int(H * 0.1)],
        [int(W * 0.9), int(H * 0.2)],
        [int(W * 0.8), int(H * 0.9)],
        [int(W * 0.15), int(H * 0.7)],
    ], dtype=np.int32)
    cv2.fillConvexPoly(shadow, poly, (255, 255, 255))
    shadow = cv2.GaussianBlur(shadow, (51, 51), 0)
    return cv2.subtract(frame, (shadow * 0.25).astype(np.uint8))


@pytest.fixture
def rect_scene() -> np.ndarray:
    return make_white_rect_scene()


@pytest.fixture
def rect_corners() -> np.ndarray:
    return np.array([[100, 100], [500, 100], [500, 700], [100, 700]], dtype=np.float32)


@pytest.fixture
def warped_scene():
    frame, pts = place_page_in_frame(make_textured_page())
    return add_shadow(frame), pts


@pytest.fixture
def page_image() -> np.ndarray:
    return make_textured_page()
