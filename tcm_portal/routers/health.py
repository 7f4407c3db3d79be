"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from tcm_portal.dependencies.services import get_gemini_config, get_store
from tcm_portal.models.schemas import HealthCheckResponse
from tcm_portal.services.gemini_client import GeminiConfig
from tcm_portal.services.store import PortalStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    store: PortalStore = Depends(get_store),
    gemini: GeminiConfig = Depends(get_gemini_config),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with the store backend and Gemini configuration
    """
    if not gemini.is_configured:
        logger.warning("Health check: GEMINI_API_KEY is not set")

    overall_status = "healthy" if gemini.is_configured else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        store=store.backend,
        persistent_store=store.persistent,
        gemini_configured=gemini.is_configured,
        timestamp=datetime.now(timezone.utc),
    )
