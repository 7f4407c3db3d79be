"""Tests for page-break planning."""
import numpy as np
import pytest

from tcm_portal.services.errors import EmptyContentError
from tcm_portal.services.pagination import (
    MAX_SLICE,
    PageLayout,
    _choose_break,
    find_content_bounds,
    plan_page_slices,
    row_ink_score,
)


def _pixels(image):
    return np.asarray(image.convert("RGBA"))


def _assert_contiguous_cover(plan):
    slices = plan.slices
    assert slices[0].y == plan.bounds.min_y
    for previous, current in zip(slices, slices[1:]):
        assert previous.y + previous.height == current.y
    assert slices[-1].y + slices[-1].height == plan.bounds.max_y + 1
    assert all(s.height >= 1 for s in slices)


# ---------------------------------------------------------------------------
# Bounds and ink
# ---------------------------------------------------------------------------

def test_content_bounds_of_striped_image(make_striped):
    bounds = find_content_bounds(_pixels(make_striped(400, 1500)))

    assert bounds.min_x == 6
    assert bounds.min_y == 6
    assert bounds.max_x == 392
    assert bounds.max_y == 1472


def test_content_bounds_blank_and_transparent():
    white = np.full((50, 50, 4), 255, dtype=np.uint8)
    assert find_content_bounds(white) is None

    transparent = np.zeros((50, 50, 4), dtype=np.uint8)
    assert find_content_bounds(transparent) is None


def test_content_bounds_are_clamped_to_image():
    pixels = np.full((20, 20, 4), 255, dtype=np.uint8)
    pixels[0:2, 0:2, :3] = 0
    bounds = find_content_bounds(pixels)
    assert (bounds.min_x, bounds.min_y) == (0, 0)


def test_rgb_input_is_accepted():
    pixels = np.full((40, 40, 3), 255, dtype=np.uint8)
    pixels[10:20, 10:20] = 0
    assert find_content_bounds(pixels) is not None


def test_invalid_shape_rejected():
    with pytest.raises(ValueError):
        find_content_bounds(np.zeros((10, 10), dtype=np.uint8))


def test_row_ink_score(make_striped):
    pixels = _pixels(make_striped(400, 200))
    assert row_ink_score(pixels, 15, 0, 399) > 0
    assert row_ink_score(pixels, 5, 0, 399) == 0
    # band at rows 10-29 spans x 10..389; sampled every 3rd column
    assert row_ink_score(pixels, 15, 0, 399) == len(range(12, 390, 3))


# ---------------------------------------------------------------------------
# _choose_break
# ---------------------------------------------------------------------------

def test_choose_break_prefers_nearest_whitespace():
    scores = np.array([9, 9, 0, 9, 9, 0, 9])
    assert _choose_break(scores, 0, 6, 4, 0) == 5


def test_choose_break_tie_keeps_first():
    scores = np.array([9, 9, 0, 9, 0, 9])
    assert _choose_break(scores, 1, 5, 3, 0) == 2


def test_choose_break_falls_back_to_lowest_ink():
    scores = np.array([5, 3, 4, 1, 2])
    assert _choose_break(scores, 0, 4, 2, 0) == 3


# ---------------------------------------------------------------------------
# plan_page_slices
# ---------------------------------------------------------------------------

def test_tall_content_is_split_on_whitespace(make_striped):
    pixels = _pixels(make_striped(400, 1500))
    plan = plan_page_slices(pixels, PageLayout())

    assert len(plan.slices) == 3
    _assert_contiguous_cover(plan)

    right = plan.src_x + plan.src_width - 1
    for page in plan.slices[1:]:
        assert row_ink_score(pixels, page.y, plan.src_x, right) == 0


def test_slice_geometry(make_striped):
    layout = PageLayout()
    plan = plan_page_slices(_pixels(make_striped(400, 1500)), layout)

    assert plan.src_x == 0
    assert plan.src_width == 400
    assert plan.px_per_mm == pytest.approx(400 / layout.content_width_mm)

    ideal = int(layout.content_height_mm * plan.px_per_mm)
    for page in plan.slices:
        assert page.x == plan.src_x
        assert page.width == plan.src_width
        assert page.height <= int(ideal * MAX_SLICE)
        assert page.output_height_mm == pytest.approx(page.height / plan.px_per_mm)
        assert page.output_height_mm <= layout.content_height_mm * MAX_SLICE


def test_short_content_fits_one_page(make_striped):
    plan = plan_page_slices(_pixels(make_striped(400, 120)))
    assert len(plan.slices) == 1
    _assert_contiguous_cover(plan)


def test_solid_content_still_covers_everything():
    pixels = np.zeros((2000, 300, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    plan = plan_page_slices(pixels)

    assert len(plan.slices) > 1
    _assert_contiguous_cover(plan)


def test_blank_bitmap_raises():
    with pytest.raises(EmptyContentError):
        plan_page_slices(np.full((300, 300, 4), 255, dtype=np.uint8))


def test_layout_content_area():
    layout = PageLayout(page_width_mm=210, page_height_mm=297, margin_mm=10)
    assert layout.content_width_mm == 190
    assert layout.content_height_mm == 277
