import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ..deps import get_current_user_id, get_directory
from ..infrastructure.clients import HttpDirectory
from ..schemas import CounterpartyRead, ResourceRead, VenueRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/directory", tags=["directory"])


def _unavailable(exc: httpx.HTTPError) -> HTTPException:
    logger.warning("directory lookup failed: %s", exc)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="directory service unavailable")


@router.get("/venues", response_model=List[VenueRead])
async def list_venues(
    search: Optional[str] = Query(default=None),
    directory: HttpDirectory = Depends(get_directory),
    user_id: int = Depends(get_current_user_id),
) -> list[VenueRead]:
    try:
        return await directory.search_venues(search)
    except httpx.HTTPError as exc:
        raise _unavailable(exc)


@router.get("/venues/{venue_id}/resources", response_model=List[ResourceRead])
async def list_resources(
    venue_id: int = Path(..., ge=1),
    search: Optional[str] = Query(default=None),
    directory: HttpDirectory = Depends(get_directory),
    user_id: int = Depends(get_current_user_id),
) -> list[ResourceRead]:
    try:
        return await directory.search_resources(venue_id, search)
    except httpx.HTTPError as exc:
        raise _unavailable(exc)


@router.get("/counterparties", response_model=List[CounterpartyRead])
async def search_counterparties(
    search: str = Query(..., min_length=1),
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=100),
    directory: HttpDirectory = Depends(get_directory),
    user_id: int = Depends(get_current_user_id),
) -> list[CounterpartyRead]:
    try:
        return await directory.search_counterparties(search, page=page, size=size)
    except httpx.HTTPError as exc:
        raise _unavailable(exc)
