"""
Daily log endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from tcm_portal.dependencies.services import get_store
from tcm_portal.models.schemas import DailyLogCreate, DailyLogResponse, SaveResponse
from tcm_portal.services.store import PortalStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{user_id}", response_model=List[DailyLogResponse])
async def get_logs(user_id: str, store: PortalStore = Depends(get_store)):
    """
    Logs for one user, newest date first.

    Raises:
        HTTPException 400: *user_id* is not an integer
    """
    try:
        normalized_id = int(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user_id.",
        )
    return await store.get_logs(normalized_id)


@router.post("", response_model=SaveResponse)
async def save_log(entry: DailyLogCreate, store: PortalStore = Depends(get_store)):
    log_id = await store.save_log(entry)
    logger.info("Saved daily log %d for user %d (%s)", log_id, entry.user_id, entry.date)
    return SaveResponse(success=True, id=log_id)
