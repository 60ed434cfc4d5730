"""Person directory and host lookup endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import Viewer, require_viewer
from ..database import get_session
from ..services import directory
from ..services.memberships import staff_org_id

router = APIRouter(prefix="/api", tags=["directory"])


@router.get("/directory/search", response_model=schemas.DirectorySearchResponse)
async def search_directory(
    q: str = "",
    mode: directory.DirectoryMode = directory.DirectoryMode.all,
    take: int = Query(directory.DEFAULT_TAKE, ge=1, le=directory.MAX_TAKE),
    session: AsyncSession = Depends(get_session),
    viewer: Viewer = Depends(require_viewer),
) -> schemas.DirectorySearchResponse:
    org_id = staff_org_id(viewer)
    if org_id is None:
        return schemas.DirectorySearchResponse(items=[], count=0)
    return await directory.search_directory(session, org_id, q, mode=mode, take=take)


@router.get("/hosts/search", response_model=schemas.HostSearchResponse)
async def search_hosts(
    q: str = "",
    take: Optional[int] = None,
    cursor: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    viewer: Viewer = Depends(require_viewer),
) -> schemas.HostSearchResponse:
    org_id = staff_org_id(viewer)
    if org_id is None:
        return schemas.HostSearchResponse(items=[], count=0)
    return await directory.search_hosts(session, org_id, q, take=take, cursor=cursor)
