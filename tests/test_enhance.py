from __future__ import annotations

import numpy as np
import pytest

from docscan.enhance.filters import (
    BW,
    FILTERS,
    GRAYSCALE,
    MAGIC_COLOR,
    NEUTRAL,
    ORIGINAL,
    Adjustments,
    encode_jpeg,
    process_scan,
    sharpen,
)


def _dull_page(h=120, w=90):
    """Low-contrast page: grey paper at ~150 with darker 'ink' at ~110."""
    page = np.full((h, w, 3), 150, np.uint8)
    page[20:30, 10:80] = 110
    page[50:60, 10:80] = 110
    return page


@pytest.mark.parametrize("name", FILTERS)
def test_every_filter_keeps_shape_and_dtype(name):
    page = _dull_page()
    out = process_scan(page, name, Adjustments())
    assert out.shape == page.shape
    assert out.dtype == np.uint8


def test_magic_color_whitens_paper_and_darkens_ink():
    page = _dull_page()
    out = process_scan(page, MAGIC_COLOR, Adjustments(sharpness=0))
    assert out[5, 5].min() > 200
    assert out[25, 40].max() < 60


def test_grayscale_has_equal_channels():
    out = process_scan(_dull_page(), GRAYSCALE, Adjustments(sharpness=0))
    assert np.array_equal(out[..., 0], out[..., 1])
    assert np.array_equal(out[..., 1], out[..., 2])


def test_bw_is_binary():
    out = process_scan(_dull_page(), BW, Adjustments(brightness=0, sharpness=0))
    assert set(np.unique(out)) <= {0, 255}
    assert out[5, 5, 0] == 255 and out[25, 40, 0] == 0


def test_original_with_neutral_adjustments_is_a_copy():
    page = _dull_page()
    out = process_scan(page, ORIGINAL, NEUTRAL)
    assert out is not page
    assert np.array_equal(out, page)


def test_original_brightness_lifts_midtones():
    page = _dull_page()
    out = process_scan(page, ORIGINAL, Adjustments(brightness=40, contrast=0, sharpness=0))
    assert out[5, 5, 0] > page[5, 5, 0]


def test_gray_input_is_accepted():
    out = process_scan(np.full((40, 30), 128, np.uint8), MAGIC_COLOR)
    assert out.shape == (40, 30, 3)


def test_sharpen_zero_is_identity():
    page = _dull_page()
    assert sharpen(page, 0.0) is page
    assert not np.array_equal(sharpen(page, 0.5), page)


def test_unknown_filter_rejected():
    with pytest.raises(ValueError):
        process_scan(_dull_page(), "sepia")


def test_encode_jpeg_produces_jpeg_bytes():
    data = encode_jpeg(_dull_page())
    assert data[:2] == b"\xff\xd8"
    assert data[-2:] == b"\xff\xd9"
    assert len(encode_jpeg(_dull_page(), quality=30)) <= len(encode_jpeg(_dull_page(), quality=95))
