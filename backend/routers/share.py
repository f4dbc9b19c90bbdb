# routers/share.py — Share link creation, public resolution, revocation
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from cache import QueryCache, get_query_cache
from database import get_db_session
from errors import ValidationError
from sharing import share_link_service

router = APIRouter(prefix="/api/share", tags=["Share Links"])


@router.post("")
async def create_share_link(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    created = await share_link_service.create(db, current_user)
    return {
        "success": True,
        "shareUrl": created.share_url,
        "token": created.token,
        "expiresAt": created.expires_at.isoformat(),
    }


@router.get("")
async def resolve_share_link(
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    """Public read of a shared board. No session required."""
    if not token:
        raise ValidationError("Token required")
    report = await share_link_service.resolve(db, cache, token)
    return {
        "success": True,
        "data": {
            "title": report.title,
            "createdBy": report.created_by,
            "createdAt": report.created_at.isoformat() if report.created_at else None,
            "prs": report.prs,
            "accessCount": report.access_count,
        },
    }


@router.get("/links")
async def list_share_links(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return {"items": await share_link_service.list_for_owner(db, current_user.id)}


@router.delete("", status_code=204, response_class=Response)
async def deactivate_share_link(
    token: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if not token:
        raise ValidationError("Token required")
    await share_link_service.deactivate(db, current_user.id, token)
    return Response(status_code=204)
