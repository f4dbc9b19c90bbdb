# routers/workspaces.py — Per-user project and service name lists
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from cache import QueryCache, get_query_cache
from database import get_db_session
from models import PRCategory
import queries

router = APIRouter(prefix="/api/workspaces", tags=["Workspaces"])


class WorkspaceCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    type: Optional[PRCategory] = None


@router.get("")
async def list_workspaces(
    type: Optional[PRCategory] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    items = await queries.list_workspaces(db, cache, current_user.id, type=type)
    return {"items": items}


@router.post("", status_code=201)
async def create_workspace(
    body: WorkspaceCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    item = await queries.create_workspace(db, cache, current_user.id, body.name, body.type)
    return {"item": item}


@router.delete("", status_code=204, response_class=Response)
async def delete_workspace(
    type: Optional[PRCategory] = Query(None),
    name: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    cache: QueryCache = Depends(get_query_cache),
):
    """Refused with 409 while any of the caller's PRs still reference the name."""
    await queries.delete_workspace(db, cache, current_user.id, name, type)
    return Response(status_code=204)
