"""
Client listing.
"""
from fastapi import APIRouter, Depends
from typing import List

from tcm_portal.dependencies.services import get_store
from tcm_portal.models.schemas import ClientResponse
from tcm_portal.services.store import PortalStore

router = APIRouter()


@router.get("", response_model=List[ClientResponse])
async def list_clients(store: PortalStore = Depends(get_store)):
    """Users with the ``client`` role."""
    return await store.get_clients()
