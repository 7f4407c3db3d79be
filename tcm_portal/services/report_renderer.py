"""
HTML rendering of reports (Jinja2).

``render_report`` produces the document surface handed to the rasterizer:
HTML, a user stylesheet and any binary resources the HTML refers to by name
(currently the optional logo).  ``render_print_summary`` produces the
stand-alone print page served by ``POST /api/reports/generate``.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from jinja2 import Environment, FileSystemLoader

from tcm_portal.models.schemas import ReportMeta, ReportPayload
from tcm_portal.services.menu_normalizer import MEAL_LABELS
from tcm_portal.utils.helpers import PLACEHOLDER

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_DATA_URL = re.compile(r"^data:image/(?P<kind>[a-zA-Z0-9.+-]+);base64,(?P<data>.+)$", re.DOTALL)
_EXTENSIONS = {"jpeg": "jpg", "jpg": "jpg", "png": "png", "gif": "gif", "svg+xml": "svg"}

ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class RenderedReport:
    """Document surface: HTML plus the stylesheet and named resources it uses."""

    html: str
    css: str = ""
    resources: Dict[str, bytes] = field(default_factory=dict)


def decode_logo(data_url: Optional[str]) -> Optional[Tuple[str, bytes]]:
    """
    Decode a base64 image data URL to ``(filename, bytes)``.

    Returns None for missing or malformed input; a bad logo never blocks
    the export.
    """
    if not data_url:
        return None
    match = _DATA_URL.match(data_url.strip())
    if not match:
        logger.warning("Ignoring logo: not a base64 image data URL")
        return None
    extension = _EXTENSIONS.get(match.group("kind").lower())
    if extension is None:
        logger.warning("Ignoring logo: unsupported image type %s", match.group("kind"))
        return None
    try:
        payload = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError):
        logger.warning("Ignoring logo: invalid base64 payload")
        return None
    return f"logo.{extension}", payload


def load_stylesheet() -> str:
    return (TEMPLATE_DIR / "report.css").read_text(encoding="utf-8")


def render_report(
    report: ReportPayload,
    meta: Optional[ReportMeta] = None,
    today: Optional[date] = None,
) -> RenderedReport:
    meta = meta or ReportMeta()
    resources: Dict[str, bytes] = {}
    logo = decode_logo(meta.logo)
    if logo is not None:
        resources[logo[0]] = logo[1]

    html = ENV.get_template("report.html.j2").render(
        report=report,
        meta=meta,
        meal_labels=MEAL_LABELS,
        placeholder=PLACEHOLDER,
        logo_name=logo[0] if logo else None,
        year=(today or date.today()).year,
    )
    return RenderedReport(html=html, css=load_stylesheet(), resources=resources)


def _joined(items: Iterable[str]) -> str:
    return " + ".join(str(item) for item in items if str(item).strip())


def render_print_summary(
    client_name: Optional[str],
    client_phone: Optional[str],
    organs: Iterable[str],
    constitutions: Iterable[str],
) -> str:
    """Printable one-page summary; every value is HTML-escaped by the template."""
    return ENV.get_template("print_summary.html.j2").render(
        client_name=client_name or "Anonymous",
        client_phone=client_phone or "N/A",
        organs=_joined(organs) or "未提供",
        constitutions=_joined(constitutions) or "未提供",
    )
