"""
Report endpoints: generation, persistence and PDF export.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, JSONResponse, Response
from typing import List
import logging

from tcm_portal.config import settings
from tcm_portal.dependencies.services import (
    get_page_layout,
    get_rasterizer,
    get_report_generator,
    get_store,
)
from tcm_portal.models.schemas import (
    AIGenerateRequest,
    DiagnosisRequest,
    DiagnosisResponse,
    ExportRequest,
    PrintSummaryRequest,
    ReportMeta,
    ReportRecordResponse,
    ReportSaveRequest,
    SaveResponse,
)
from tcm_portal.services.errors import (
    NotJsonError,
    RecordNotFoundError,
    StoredReportInvalidError,
    StoreNotConfiguredError,
)
from tcm_portal.services.json_extractor import extract_json
from tcm_portal.services.pagination import PageLayout
from tcm_portal.services.pdf_export import ExportResult, export_guard, export_report_pdf, report_key
from tcm_portal.services.prompt_builder import DiagnosisInput, ScoredInput
from tcm_portal.services.rasterizer import Rasterizer
from tcm_portal.services.report_generator import ReportGenerator
from tcm_portal.services.report_normalizer import normalize_report
from tcm_portal.services.report_renderer import render_print_summary, render_report
from tcm_portal.services.store import PortalStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _pdf_response(result: ExportResult) -> Response:
    return Response(
        content=result.pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Page-Count": str(result.page_count),
        },
    )


# ---------------------------------------------------------------------------
# Saved reports
# ---------------------------------------------------------------------------

@router.get("", response_model=List[ReportRecordResponse])
async def list_reports(store: PortalStore = Depends(get_store)):
    """Saved reports, newest first."""
    return await store.get_reports()


@router.post("/save", response_model=SaveResponse)
async def save_report(request: ReportSaveRequest, store: PortalStore = Depends(get_store)):
    """
    Save a report.

    Raises:
        StoreNotConfiguredError (503): production without a persistent store
    """
    if settings.is_production and not store.persistent:
        raise StoreNotConfiguredError()
    report_id = await store.save_report(request)
    logger.info("Saved report %d for %s", report_id, request.client_name or "Anonymous")
    return SaveResponse(success=True, id=report_id)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@router.post("/ai-generate")
async def ai_generate(
    request: AIGenerateRequest,
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Send *prompt* as-is and return the extracted JSON in its raw shape."""
    parsed = await generator.generate_raw(
        request.prompt.strip(), model=request.model, timeout_ms=request.timeout_ms
    )
    return JSONResponse(content=parsed)


@router.post("/diagnose", response_model=DiagnosisResponse)
async def diagnose(
    request: DiagnosisRequest,
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Structured diagnosis → prompt → Gemini → normalized report + meta."""
    diagnosis = DiagnosisInput(
        primary=ScoredInput(request.primary_organ.name, request.primary_organ.score),
        others=[ScoredInput(o.name, o.score) for o in request.other_organs],
        constitutions=[ScoredInput(c.name, c.score) for c in request.constitutions],
    )
    meta = ReportMeta(
        client_name=request.client_name,
        client_phone=request.client_phone,
        logo=request.logo,
    )
    generated = await generator.generate(
        diagnosis, meta=meta, model=request.model, timeout_ms=request.timeout_ms
    )
    return DiagnosisResponse(
        report=generated.report,
        meta=generated.meta,
        finish_reason=generated.finish_reason,
    )


@router.post("/generate", response_class=HTMLResponse)
async def print_summary(request: PrintSummaryRequest):
    """Printable HTML summary page (opens the print dialog on load)."""
    return HTMLResponse(
        render_print_summary(
            request.client_name, request.client_phone, request.organs, request.constitutions
        )
    )


# ---------------------------------------------------------------------------
# PDF export
# ---------------------------------------------------------------------------

@router.post("/export")
async def export_pdf(
    request: ExportRequest,
    rasterizer: Rasterizer = Depends(get_rasterizer),
    layout: PageLayout = Depends(get_page_layout),
):
    """Normalize, render and export a report to a paginated PDF."""
    report = normalize_report(request.report)
    surface = render_report(report, request.meta)
    with export_guard.hold(report_key({"report": request.report, "meta": request.meta.model_dump()})):
        result = await export_report_pdf(surface, rasterizer, layout)
    return _pdf_response(result)


@router.get("/{report_id}/pdf")
async def export_saved_pdf(
    report_id: int,
    store: PortalStore = Depends(get_store),
    rasterizer: Rasterizer = Depends(get_rasterizer),
    layout: PageLayout = Depends(get_page_layout),
):
    """Export a saved report; its stored JSON text is re-extracted and normalized."""
    record = await store.get_report(report_id)
    if record is None:
        raise RecordNotFoundError(f"Report {report_id} not found.")

    try:
        content = extract_json(record["content"])
    except NotJsonError as exc:
        logger.warning("Saved report %s has unreadable content", report_id)
        raise StoredReportInvalidError() from exc

    report = normalize_report(content)
    meta = ReportMeta(
        client_name=record["client_name"],
        client_phone=record["client_phone"],
        diagnosis_summary=record["diagnosis"],
    )
    surface = render_report(report, meta)
    with export_guard.hold(f"report-{report_id}"):
        result = await export_report_pdf(surface, rasterizer, layout)
    return _pdf_response(result)
