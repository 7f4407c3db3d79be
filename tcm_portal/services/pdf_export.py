"""
Paginated rasterized PDF export.

Usage
-----
    surface = render_report(report, meta)
    with export_guard.hold(report_key):
        result = await export_report_pdf(surface, MuPDFRasterizer(), PageLayout.from_settings())

The surface is rasterized once (in a worker thread), the page plan is
computed over the bitmap, and every slice is JPEG-encoded and placed on its
own A4 page at the margin.  Nothing is returned unless every page was
written.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import hashlib
import io
import json
import logging
import threading
import time
from datetime import datetime
from typing import Dict, Iterator, Optional

import numpy as np
import pymupdf as fitz
from PIL import Image

from tcm_portal.services.errors import ExportInProgressError
from tcm_portal.services.pagination import PageLayout, SlicePlan, plan_page_slices
from tcm_portal.services.rasterizer import Rasterizer
from tcm_portal.services.report_renderer import RenderedReport
from tcm_portal.utils.helpers import export_filename

logger = logging.getLogger(__name__)

MM_PER_INCH = 25.4
PT_PER_INCH = 72.0


def mm_to_pt(mm: float) -> float:
    return mm / MM_PER_INCH * PT_PER_INCH


@dataclasses.dataclass
class ExportResult:
    pdf_bytes: bytes
    page_count: int
    filename: str


# ---------------------------------------------------------------------------
# Export guard (class-level state, acts as a singleton)
# ---------------------------------------------------------------------------

class ExportGuard:
    """Refuses a second concurrent export of the same report key."""

    _active: Dict[str, float] = {}
    _lock = threading.Lock()

    @classmethod
    def is_running(cls, key: str) -> bool:
        return key in cls._active

    @classmethod
    @contextlib.contextmanager
    def hold(cls, key: str) -> Iterator[None]:
        with cls._lock:
            if key in cls._active:
                raise ExportInProgressError()
            cls._active[key] = time.monotonic()
        try:
            yield
        finally:
            with cls._lock:
                started = cls._active.pop(key, None)
            if started is not None:
                logger.debug("Export %s released after %.2fs", key, time.monotonic() - started)

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._active.clear()


# Module-level singleton
export_guard = ExportGuard()


def report_key(content: object) -> str:
    """Stable key for a report body (used when no saved id exists)."""
    canonical = json.dumps(content, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# PDF assembly
# ---------------------------------------------------------------------------

def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def build_pdf(image: Image.Image, plan: SlicePlan, layout: PageLayout) -> bytes:
    """Write one A4 page per slice of *plan*; returns the PDF bytes."""
    page_width = mm_to_pt(layout.page_width_mm)
    page_height = mm_to_pt(layout.page_height_mm)
    x0 = mm_to_pt((layout.page_width_mm - layout.content_width_mm) / 2)
    y0 = mm_to_pt(layout.margin_mm)
    draw_width = mm_to_pt(layout.content_width_mm)

    doc = fitz.open()
    try:
        for page_slice in plan.slices:
            x, y, w, h = page_slice.source_region
            jpeg = _encode_jpeg(image.crop((x, y, x + w, y + h)), layout.jpeg_quality)
            page = doc.new_page(width=page_width, height=page_height)
            rect = fitz.Rect(x0, y0, x0 + draw_width, y0 + mm_to_pt(page_slice.output_height_mm))
            page.insert_image(rect, stream=jpeg)
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


async def export_report_pdf(
    surface: RenderedReport,
    rasterizer: Rasterizer,
    layout: Optional[PageLayout] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    """
    Rasterize *surface* and emit a paginated PDF.

    Raises:
        EmptyContentError: nothing visible was rendered
        RasterContextError: the rasterizer could not be initialised or failed
    """
    layout = layout or PageLayout.from_settings()
    started = time.monotonic()

    image = await asyncio.to_thread(rasterizer.rasterize, surface, layout.pixel_ratio)
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    pixels = np.asarray(image)

    plan = await asyncio.to_thread(plan_page_slices, pixels, layout)
    pdf_bytes = await asyncio.to_thread(build_pdf, image, plan, layout)

    result = ExportResult(
        pdf_bytes=pdf_bytes,
        page_count=len(plan.slices),
        filename=export_filename(now),
    )
    logger.info(
        "Exported %s: %d page(s), %d bytes in %.2fs",
        result.filename, result.page_count, len(pdf_bytes), time.monotonic() - started,
    )
    return result
