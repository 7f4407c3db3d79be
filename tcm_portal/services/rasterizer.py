"""
HTML → RGBA bitmap rasterization with MuPDF (PyMuPDF ``Story``).

The report HTML is laid out in a private in-memory PDF made of tall
"sheets" of a fixed width; each sheet is rendered at ``pixel_ratio`` and the
sheets are stacked into one continuous bitmap.  Layout is finished (every
story element placed, fonts resolved by MuPDF) before any pixel is produced,
and the scratch document is closed on every exit path.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import List, Protocol, Tuple

import pymupdf as fitz
from PIL import Image

from tcm_portal.services.errors import RasterContextError
from tcm_portal.services.report_renderer import RenderedReport

logger = logging.getLogger(__name__)

BACKGROUND = (255, 255, 255, 255)


class Rasterizer(Protocol):
    def rasterize(self, surface: RenderedReport, pixel_ratio: float) -> Image.Image:
        """Return the fully laid-out surface as one RGBA image."""
        ...


@dataclass
class MuPDFRasterizer:
    """Lays HTML out with ``fitz.Story`` and renders it with ``get_pixmap``."""

    width_pt: float = 680.0
    sheet_height_pt: float = 2400.0
    margin_pt: float = 16.0
    max_sheets: int = 200

    def _layout(self, surface: RenderedReport) -> Tuple[bytes, List[fitz.Rect]]:
        archive = fitz.Archive()
        for name, data in surface.resources.items():
            archive.add(data, name)

        story = fitz.Story(html=surface.html, user_css=surface.css or None, archive=archive)
        mediabox = fitz.Rect(0, 0, self.width_pt, self.sheet_height_pt)
        where = mediabox + (self.margin_pt, self.margin_pt, -self.margin_pt, -self.margin_pt)

        buffer = io.BytesIO()
        writer = fitz.DocumentWriter(buffer)
        filled_rects: List[fitz.Rect] = []
        more = 1
        try:
            while more:
                if len(filled_rects) >= self.max_sheets:
                    raise RasterContextError("報告內容過長，無法生成 PDF。")
                device = writer.begin_page(mediabox)
                more, filled = story.place(where)
                story.draw(device)
                writer.end_page()
                filled_rects.append(fitz.Rect(filled))
        finally:
            writer.close()
        return buffer.getvalue(), filled_rects

    def _sheet_clip(self, index: int, count: int, filled: fitz.Rect) -> fitz.Rect:
        top = 0 if index == 0 else self.margin_pt
        bottom = filled.y1 + (self.margin_pt if index == count - 1 else 0)
        bottom = min(max(bottom, top + 1), self.sheet_height_pt)
        return fitz.Rect(0, top, self.width_pt, bottom)

    def rasterize(self, surface: RenderedReport, pixel_ratio: float) -> Image.Image:
        try:
            pdf_bytes, filled_rects = self._layout(surface)
        except RasterContextError:
            raise
        except (RuntimeError, ValueError) as exc:
            logger.error("MuPDF layout failed: %s", exc)
            raise RasterContextError() from exc

        sheets: List[Image.Image] = []
        doc = None
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
            matrix = fitz.Matrix(pixel_ratio, pixel_ratio)
            for index, page in enumerate(doc):
                clip = self._sheet_clip(index, len(filled_rects), filled_rects[index])
                pix = page.get_pixmap(matrix=matrix, clip=clip, alpha=False)
                sheets.append(Image.frombytes("RGB", (pix.width, pix.height), pix.samples))
        except (RuntimeError, ValueError) as exc:
            logger.error("MuPDF rendering failed: %s", exc)
            raise RasterContextError() from exc
        finally:
            if doc is not None:
                doc.close()

        if not sheets:
            raise RasterContextError()

        width = max(sheet.width for sheet in sheets)
        height = sum(sheet.height for sheet in sheets)
        canvas = Image.new("RGBA", (width, height), BACKGROUND)
        y = 0
        for sheet in sheets:
            canvas.paste(sheet, (0, y))
            y += sheet.height
        logger.info(
            "Rasterized report: %d sheet(s) → %dx%d px at ratio %.1f",
            len(sheets), width, height, pixel_ratio,
        )
        return canvas
