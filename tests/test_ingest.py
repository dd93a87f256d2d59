from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from docscan.core.contracts import Frame
from docscan.core.errors import InvalidFrameError
from docscan.io.ingest import (
    as_frame,
    downscale,
    frame_from_buffer,
    load_image,
    map_to_source,
    map_to_working,
    to_gray,
    validate_frame,
)


def test_downscale_bounds_long_edge():
    img = np.zeros((1200, 1600, 3), np.uint8)
    f = downscale(img, 640)
    assert max(f.width, f.height) == 640
    assert (f.width, f.height) == (640, 480)
    assert f.scale == pytest.approx(0.4)


def test_downscale_never_upscales():
    img = np.zeros((300, 200, 3), np.uint8)
    f = downscale(img, 640)
    assert f.scale == 1.0
    assert f.pixels is img


def test_downscale_scales_compose():
    img = np.zeros((2000, 1000), np.uint8)
    once = downscale(img, 1000)
    twice = downscale(once, 500)
    assert twice.scale == pytest.approx(0.25)
    assert twice.channel_order == "gray"


def test_point_mapping_round_trip_within_a_pixel():
    rng = np.random.default_rng(11)
    for _ in range(100):
        h, w = rng.integers(200, 4000, size=2)
        scale = downscale(np.zeros((int(h), int(w)), np.uint8), 480).scale
        pt = (float(rng.uniform(0, w)), float(rng.uniform(0, h)))
        back = map_to_source(map_to_working(pt, scale), scale)
        assert abs(back[0] - pt[0]) <= 1.0 and abs(back[1] - pt[1]) <= 1.0
        frame = Frame(pixels=np.zeros((2, 2), np.uint8), scale=scale, channel_order="gray")
        back = frame.to_source(frame.to_working(pt))
        assert abs(back[0] - pt[0]) <= 1.0 and abs(back[1] - pt[1]) <= 1.0


def test_frame_from_buffer_rgba():
    w, h = 8, 5
    data = bytes([10, 20, 30, 255]) * (w * h)
    f = frame_from_buffer(data, w, h)
    assert f.size == (w, h)
    assert f.channel_order == "rgba"
    g = to_gray(f)
    assert g.shape == (h, w)


def test_frame_from_buffer_length_mismatch():
    with pytest.raises(InvalidFrameError, match="pixel length mismatch"):
        frame_from_buffer(b"\x00" * 10, 4, 4)


def test_frame_from_buffer_zero_dimensions():
    with pytest.raises(InvalidFrameError, match="no dimensions"):
        frame_from_buffer(b"", 0, 480)


@pytest.mark.parametrize("pixels,order", [
    (np.zeros((0, 10, 3), np.uint8), "bgr"),
    (np.zeros((10, 10, 3), np.uint8), "rgba"),
    (np.zeros((10, 10), np.uint8), "bgr"),
    (np.zeros((10, 10, 3), np.uint8), "yuv"),
    (np.zeros((10, 10, 3), np.float64), "bgr"),
    (np.zeros((10, 10), np.uint16), "gray"),
])
def test_validate_frame_rejects(pixels, order):
    with pytest.raises(InvalidFrameError):
        validate_frame(Frame(pixels=pixels, channel_order=order))


def test_validate_frame_rejects_bad_scale():
    with pytest.raises(InvalidFrameError):
        validate_frame(Frame(pixels=np.zeros((4, 4), np.uint8), scale=0.0, channel_order="gray"))


def test_as_frame_guesses_channel_order():
    assert as_frame(np.zeros((4, 4), np.uint8)).channel_order == "gray"
    assert as_frame(np.zeros((4, 4, 3), np.uint8)).channel_order == "bgr"
    assert as_frame(np.zeros((4, 4, 4), np.uint8)).channel_order == "bgra"
    f = Frame(pixels=np.zeros((4, 4, 3), np.uint8), channel_order="rgb")
    assert as_frame(f) is f


def test_load_image_applies_exif_orientation(tmp_path):
    path = tmp_path / "phone.jpg"
    img = Image.new("RGB", (40, 20), (200, 30, 30))
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90° CW on display
    img.save(path, exif=exif)

    upright = load_image(str(path))
    assert upright.shape[:2] == (40, 20)
    raw = load_image(str(path), apply_exif=False)
    assert raw.shape[:2] == (20, 40)
    # Pillow gave RGB, we hand back BGR
    assert upright[10, 10, 2] > upright[10, 10, 0]


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_image(str(tmp_path / "nope.png"))
    with pytest.raises(FileNotFoundError):
        load_image(str(tmp_path / "nope.png"), apply_exif=False)


def test_validate_frame_names_the_dtype():
    with pytest.raises(InvalidFrameError, match="float64"):
        validate_frame(as_frame(np.zeros((10, 10, 3), np.float64)))
