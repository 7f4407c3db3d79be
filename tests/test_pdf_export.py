"""Tests for PDF assembly and the export guard."""
import threading
from datetime import datetime

import pymupdf as fitz
import pytest

from tcm_portal.services import pdf_export
from tcm_portal.services.errors import EmptyContentError, ExportInProgressError
from tcm_portal.services.pagination import PageLayout, plan_page_slices
from tcm_portal.services.pdf_export import (
    ExportGuard,
    export_guard,
    export_report_pdf,
    mm_to_pt,
    report_key,
)
from tcm_portal.services.report_renderer import RenderedReport


@pytest.fixture
def surface():
    return RenderedReport(html="<p>report</p>")


@pytest.fixture(autouse=True)
def clean_guard():
    ExportGuard.reset()
    yield
    ExportGuard.reset()


@pytest.mark.asyncio
async def test_export_writes_one_a4_page_per_slice(surface, rasterizer):
    result = await export_report_pdf(
        surface, rasterizer, PageLayout(), now=datetime(2026, 3, 1, 9, 30, 5)
    )

    assert rasterizer.calls == 1
    assert result.filename == "tcm-report-20260301-093005.pdf"
    assert result.pdf_bytes.startswith(b"%PDF")
    assert result.page_count == 3

    doc = fitz.open(stream=result.pdf_bytes, filetype="pdf")
    try:
        assert doc.page_count == result.page_count
        for page in doc:
            assert page.rect.width == pytest.approx(mm_to_pt(210), abs=0.01)
            assert page.rect.height == pytest.approx(mm_to_pt(297), abs=0.01)
            assert len(page.get_images()) == 1
    finally:
        doc.close()


@pytest.mark.asyncio
async def test_images_are_placed_inside_margins(surface, rasterizer):
    layout = PageLayout(margin_mm=10)
    result = await export_report_pdf(surface, rasterizer, layout)

    doc = fitz.open(stream=result.pdf_bytes, filetype="pdf")
    try:
        page = doc[0]
        xref = page.get_images()[0][0]
        rect = page.get_image_rects(xref)[0]
        assert rect.x0 == pytest.approx(mm_to_pt(10), abs=0.5)
        assert rect.y0 == pytest.approx(mm_to_pt(10), abs=0.5)
        assert rect.width == pytest.approx(mm_to_pt(190), abs=0.5)
        assert rect.y1 <= page.rect.height
    finally:
        doc.close()


@pytest.mark.asyncio
async def test_blank_surface_raises(surface, blank_rasterizer):
    with pytest.raises(EmptyContentError):
        await export_report_pdf(surface, blank_rasterizer, PageLayout())


@pytest.mark.asyncio
async def test_page_planning_runs_off_the_event_loop(surface, rasterizer, monkeypatch):
    loop_thread = threading.get_ident()
    planned_on = []

    def recording_plan(pixels, layout):
        planned_on.append(threading.get_ident())
        return plan_page_slices(pixels, layout)

    monkeypatch.setattr(pdf_export, "plan_page_slices", recording_plan)
    result = await export_report_pdf(surface, rasterizer, PageLayout())

    assert result.page_count >= 1
    assert planned_on and planned_on[0] != loop_thread


def test_mm_to_pt():
    assert mm_to_pt(25.4) == pytest.approx(72.0)


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------

def test_guard_rejects_concurrent_export_of_same_key():
    with export_guard.hold("report-1"):
        assert ExportGuard.is_running("report-1")
        with pytest.raises(ExportInProgressError):
            with export_guard.hold("report-1"):
                pass
    assert not ExportGuard.is_running("report-1")


def test_guard_allows_different_keys():
    with export_guard.hold("a"):
        with export_guard.hold("b"):
            assert ExportGuard.is_running("a")
            assert ExportGuard.is_running("b")


def test_guard_released_after_failure():
    with pytest.raises(RuntimeError):
        with export_guard.hold("k"):
            raise RuntimeError("boom")
    assert not ExportGuard.is_running("k")


def test_report_key_is_order_independent():
    assert report_key({"a": 1, "b": [1, 2]}) == report_key({"b": [1, 2], "a": 1})
    assert report_key({"a": 1}) != report_key({"a": 2})
    assert len(report_key({})) == 16
