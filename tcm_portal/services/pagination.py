"""
Page-break planning over a rasterized report.

Given one tall RGBA bitmap, find the visible content, then cut it into
A4-sized slices whose breaks fall on (near-)blank rows close to the ideal
page height, so text lines and table rows are not sliced in half.

Public API
----------
PageLayout                       page geometry in millimetres
find_content_bounds(pixels)      -> Optional[ContentBounds]
row_ink_score(pixels, y, x0, x1) -> int
plan_page_slices(pixels, layout) -> SlicePlan   (raises EmptyContentError)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from tcm_portal.config import settings
from tcm_portal.services.errors import EmptyContentError

logger = logging.getLogger(__name__)

# Pixel classification thresholds (8-bit channels)
BLANK_ALPHA_MAX = 16      # alpha below this is transparent
BLANK_CHANNEL_MIN = 248   # r, g and b above this is white
BOUNDS_STEP = 2
BOUNDS_PAD_PX = 4
INK_STEP_X = 3

# Break search, as fractions of the ideal slice height
SEARCH_RANGE = 0.15
MIN_SLICE = 0.72
MAX_SLICE = 1.2
WHITESPACE_FRACTION = 0.01
MIN_HORIZONTAL_PAD_PX = 8
HORIZONTAL_PAD_FRACTION = 0.03


@dataclass(frozen=True)
class PageLayout:
    page_width_mm: float = 210.0
    page_height_mm: float = 297.0
    margin_mm: float = 8.0
    pixel_ratio: float = 2.0
    jpeg_quality: int = 98

    @classmethod
    def from_settings(cls) -> "PageLayout":
        return cls(
            page_width_mm=settings.PDF_PAGE_WIDTH_MM,
            page_height_mm=settings.PDF_PAGE_HEIGHT_MM,
            margin_mm=settings.PDF_MARGIN_MM,
            pixel_ratio=settings.EXPORT_PIXEL_RATIO,
            jpeg_quality=settings.PDF_JPEG_QUALITY,
        )

    @property
    def content_width_mm(self) -> float:
        return self.page_width_mm - self.margin_mm * 2

    @property
    def content_height_mm(self) -> float:
        return self.page_height_mm - self.margin_mm * 2


@dataclass(frozen=True)
class ContentBounds:
    """Inclusive pixel box around every non-blank pixel, padded."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1


@dataclass(frozen=True)
class PageSlice:
    x: int
    y: int
    width: int
    height: int
    output_height_mm: float

    @property
    def source_region(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass
class SlicePlan:
    bounds: ContentBounds
    src_x: int
    src_width: int
    px_per_mm: float
    slices: List[PageSlice] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pixel classification
# ---------------------------------------------------------------------------

def _ink_mask(pixels: np.ndarray) -> np.ndarray:
    """True where a pixel counts as ink (alpha > 16 and any channel < 248)."""
    r, g, b, a = pixels[..., 0], pixels[..., 1], pixels[..., 2], pixels[..., 3]
    return (a > BLANK_ALPHA_MAX) & (
        (r < BLANK_CHANNEL_MIN) | (g < BLANK_CHANNEL_MIN) | (b < BLANK_CHANNEL_MIN)
    )


def _as_rgba(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"expected an HxWx3 or HxWx4 array, got shape {pixels.shape}")
    if pixels.shape[2] == 3:
        alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=pixels.dtype)
        pixels = np.concatenate([pixels, alpha], axis=2)
    return pixels


def find_content_bounds(pixels: np.ndarray) -> Optional[ContentBounds]:
    """
    Box around the visible content, sampling every 2nd pixel on both axes.

    A pixel is blank when alpha < 16 or r, g and b are all > 248.  The box is
    padded by 4 px and clamped to the image.  Returns None for a blank image.
    """
    pixels = _as_rgba(pixels)
    height, width = pixels.shape[:2]
    sampled = pixels[::BOUNDS_STEP, ::BOUNDS_STEP]
    r, g, b, a = sampled[..., 0], sampled[..., 1], sampled[..., 2], sampled[..., 3]
    blank = (a < BLANK_ALPHA_MAX) | (
        (r > BLANK_CHANNEL_MIN) & (g > BLANK_CHANNEL_MIN) & (b > BLANK_CHANNEL_MIN)
    )
    ys, xs = np.nonzero(~blank)
    if ys.size == 0:
        return None

    return ContentBounds(
        min_x=max(0, int(xs.min()) * BOUNDS_STEP - BOUNDS_PAD_PX),
        min_y=max(0, int(ys.min()) * BOUNDS_STEP - BOUNDS_PAD_PX),
        max_x=min(width - 1, int(xs.max()) * BOUNDS_STEP + BOUNDS_PAD_PX),
        max_y=min(height - 1, int(ys.max()) * BOUNDS_STEP + BOUNDS_PAD_PX),
    )


def row_ink_score(pixels: np.ndarray, y: int, min_x: int, max_x: int) -> int:
    """Ink pixels in row *y* between *min_x* and *max_x*, every 3rd column."""
    row = _as_rgba(pixels)[y : y + 1, min_x : max_x + 1 : INK_STEP_X]
    return int(_ink_mask(row).sum())


# ---------------------------------------------------------------------------
# Slice planning
# ---------------------------------------------------------------------------

def _choose_break(
    row_scores: np.ndarray,
    lower: int,
    upper: int,
    ideal: int,
    whitespace_threshold: int,
) -> int:
    """
    Closest whitespace row to *ideal* in ``[lower, upper]``; failing that the
    lowest-ink row seen before any whitespace row; failing that *ideal*.
    """
    best_y = ideal
    best_score = math.inf
    best_distance = math.inf

    for y in range(lower, upper + 1):
        score = int(row_scores[y])
        distance = abs(y - ideal)
        if score <= whitespace_threshold:
            if distance < best_distance:
                best_distance = distance
                best_y = y
                best_score = score
            continue
        if best_distance == math.inf and score < best_score:
            best_score = score
            best_y = y

    return best_y


def plan_page_slices(pixels: np.ndarray, layout: Optional[PageLayout] = None) -> SlicePlan:
    """
    Cut the content of *pixels* into page slices.

    Slices are ordered, contiguous and together cover ``[min_y, max_y]`` of
    the content bounds exactly once.

    Raises:
        EmptyContentError: the bitmap has no visible content.
    """
    layout = layout or PageLayout()
    pixels = _as_rgba(pixels)
    height, width = pixels.shape[:2]

    bounds = find_content_bounds(pixels)
    if bounds is None:
        raise EmptyContentError()

    horizontal_pad = max(MIN_HORIZONTAL_PAD_PX, math.floor(bounds.width * HORIZONTAL_PAD_FRACTION))
    src_x = max(0, bounds.min_x - horizontal_pad)
    src_max_x = min(width - 1, bounds.max_x + horizontal_pad)
    src_width = src_max_x - src_x + 1

    px_per_mm = src_width / layout.content_width_mm
    ideal_height = math.floor(layout.content_height_mm * px_per_mm)
    search_range = math.floor(ideal_height * SEARCH_RANGE)
    min_slice = math.floor(ideal_height * MIN_SLICE)
    max_slice = math.floor(ideal_height * MAX_SLICE)
    sampled_columns = max(1, math.floor(src_width / INK_STEP_X))
    whitespace_threshold = max(2, math.floor(sampled_columns * WHITESPACE_FRACTION))

    # Ink per row over the crop, computed once for the whole bitmap.
    row_scores = _ink_mask(pixels[:, src_x : src_max_x + 1 : INK_STEP_X]).sum(axis=1)

    plan = SlicePlan(bounds=bounds, src_x=src_x, src_width=src_width, px_per_mm=px_per_mm)
    offset = bounds.min_y
    end = bounds.max_y + 1

    while offset < end:
        slice_height = min(ideal_height, end - offset)

        if offset + slice_height < end:
            ideal_end = offset + ideal_height
            lower = max(offset + min_slice, ideal_end - search_range)
            upper = min(end - 1, offset + max_slice, ideal_end + search_range)
            best_y = _choose_break(row_scores, lower, upper, ideal_end, whitespace_threshold)
            adjusted = best_y - offset
            if adjusted > 1:
                slice_height = adjusted

        slice_height = max(1, min(slice_height, end - offset))
        plan.slices.append(
            PageSlice(
                x=src_x,
                y=offset,
                width=src_width,
                height=slice_height,
                output_height_mm=slice_height / px_per_mm,
            )
        )
        offset += slice_height

    logger.info(
        "Planned %d page(s) over %dx%d px (ideal slice %d px, %.2f px/mm)",
        len(plan.slices), src_width, bounds.height, ideal_height, px_per_mm,
    )
    return plan
