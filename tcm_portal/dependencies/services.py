"""
FastAPI dependencies for the service collaborators.

Routers depend on these rather than constructing services themselves so
tests can swap any of them through ``app.dependency_overrides``.
"""
from tcm_portal.services.gemini_client import GeminiClient, GeminiConfig
from tcm_portal.services.pagination import PageLayout
from tcm_portal.services.rasterizer import MuPDFRasterizer, Rasterizer
from tcm_portal.services.report_generator import ReportGenerator
from tcm_portal.services.store import get_store  # noqa: F401  (re-exported)
from tcm_portal.config import settings


def get_gemini_config() -> GeminiConfig:
    return GeminiConfig.from_settings()


def get_report_generator() -> ReportGenerator:
    return ReportGenerator(GeminiClient(get_gemini_config()))


def get_rasterizer() -> Rasterizer:
    return MuPDFRasterizer(width_pt=settings.REPORT_RENDER_WIDTH_PT)


def get_page_layout() -> PageLayout:
    return PageLayout.from_settings()
